"""
AccountService -- the per-owner chart of accounts.

Invariants enforced:
    - (owner_id, code) is unique (DuplicateAccountCodeError before the DB
      constraint fires).
    - account_type is fixed at creation; update_account() cannot change it
      and the ORM listener blocks any other path.
"""

from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.exceptions import DuplicateAccountCodeError, UnknownAccountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


class AccountService(BaseService[Account]):
    """Create, look up and maintain accounts for a tenant."""

    def create_account(
        self,
        owner_id: UUID,
        code: str,
        name: str,
        account_type: AccountType | str,
        actor_id: UUID,
        parent_code: str | None = None,
    ) -> Account:
        code = code.strip()
        account_type = AccountType(account_type)
        if self.find_by_code(owner_id, code) is not None:
            raise DuplicateAccountCodeError(code)

        parent_id = None
        if parent_code is not None:
            parent_id = self.get_by_code(owner_id, parent_code).id

        account = Account(
            owner_id=owner_id,
            code=code,
            name=name,
            account_type=account_type.value,
            parent_id=parent_id,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.flush()

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "owner_id": str(owner_id),
                "account_code": code,
                "account_type": account_type.value,
            },
        )
        return account

    def update_account(
        self,
        account_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        name: str | None = None,
        is_active: bool | None = None,
    ) -> Account:
        account = self.require_account(owner_id, account_id)
        if name is not None:
            account.name = name
        if is_active is not None:
            account.is_active = is_active
        account.updated_by_id = actor_id
        self.flush()
        return account

    def find_by_code(self, owner_id: UUID, code: str) -> Account | None:
        return self.session.scalars(
            select(Account).where(Account.owner_id == owner_id, Account.code == code)
        ).first()

    def get_by_code(self, owner_id: UUID, code: str) -> Account:
        account = self.find_by_code(owner_id, code)
        if account is None:
            raise UnknownAccountError(code)
        return account

    def require_account(self, owner_id: UUID, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None or account.owner_id != owner_id:
            raise UnknownAccountError(str(account_id))
        return account

    def require_accounts(
        self, owner_id: UUID, account_ids: Iterable[UUID]
    ) -> dict[UUID, Account]:
        """Resolve every id or raise UnknownAccountError for the first missing one."""
        wanted = set(account_ids)
        found = {
            account.id: account
            for account in self.session.scalars(
                select(Account).where(
                    Account.owner_id == owner_id, Account.id.in_(wanted)
                )
            ).all()
        }
        missing = wanted - found.keys()
        if missing:
            raise UnknownAccountError(str(sorted(missing, key=str)[0]))
        return found

    def list_accounts(self, owner_id: UUID) -> list[Account]:
        return list(
            self.session.scalars(
                select(Account).where(Account.owner_id == owner_id).order_by(Account.code)
            ).all()
        )

    def children_of(self, owner_id: UUID, code: str) -> list[Account]:
        parent = self.get_by_code(owner_id, code)
        return list(
            self.session.scalars(
                select(Account)
                .where(Account.owner_id == owner_id, Account.parent_id == parent.id)
                .order_by(Account.code)
            ).all()
        )
