"""
Full-schema helpers.

``ledger_kernel.db.engine.create_tables`` only knows the models that happen
to be imported.  The functions here import kernel and module ORM first, so
callers that want every table (embedding applications, the test suite) go
through them.
"""

from ledger_kernel.db.engine import create_tables, drop_tables


def import_all_orm_models() -> None:
    """Idempotent; kernel tables first since module tables reference them."""
    import ledger_kernel.models  # noqa: F401
    import ledger_modules.ap.orm  # noqa: F401
    import ledger_modules.cash.orm  # noqa: F401


def create_all_tables() -> None:
    import_all_orm_models()
    create_tables()


def drop_all_tables() -> None:
    import_all_orm_models()
    drop_tables()
