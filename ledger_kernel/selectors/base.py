"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Selectors take a Session from the caller and only read."""

    def __init__(self, session: Session):
        self.session = session
