"""
Permission gate for privileged ledger operations.

The surrounding application owns users and roles; the ledger only asks
``has_permission(owner_id, actor_id, permission)`` through an injected
checker.
"""

from enum import Enum
from typing import Iterable, Protocol, runtime_checkable
from uuid import UUID

from ledger_kernel.exceptions import PermissionDeniedError
from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.permissions")


class Permission(str, Enum):
    CAN_CLOSE_BOOKS = "can_close_books"
    CAN_UNDO_RECONCILIATION = "can_undo_reconciliation"


@runtime_checkable
class PermissionChecker(Protocol):
    def has_permission(
        self, owner_id: UUID, actor_id: UUID, permission: Permission
    ) -> bool: ...


class StaticPermissions:
    """In-memory grants keyed by actor; ``allow_all`` grants everything."""

    def __init__(
        self,
        grants: dict[UUID, Iterable[Permission]] | None = None,
        allow_all: bool = False,
    ):
        self._grants = {actor: set(perms) for actor, perms in (grants or {}).items()}
        self._allow_all = allow_all

    def grant(self, actor_id: UUID, *permissions: Permission) -> None:
        self._grants.setdefault(actor_id, set()).update(permissions)

    def revoke(self, actor_id: UUID, *permissions: Permission) -> None:
        self._grants.get(actor_id, set()).difference_update(permissions)

    def has_permission(
        self, owner_id: UUID, actor_id: UUID, permission: Permission
    ) -> bool:
        return self._allow_all or permission in self._grants.get(actor_id, set())


def require_permission(
    checker: PermissionChecker,
    owner_id: UUID,
    actor_id: UUID,
    permission: Permission,
) -> None:
    """Raise PermissionDeniedError unless the actor holds the permission."""
    if not checker.has_permission(owner_id, actor_id, permission):
        logger.warning(
            "permission_denied",
            extra={
                "owner_id": str(owner_id),
                "actor_id": str(actor_id),
                "permission": permission.value,
            },
        )
        raise PermissionDeniedError(permission.value, actor_id=str(actor_id))
