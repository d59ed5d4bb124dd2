"""Duplicate-submission guard.

At most one open deposit per (account, purpose). The partial unique index
``uq_deposits_open_account_purpose`` is what actually enforces this; the
read-side check only gives well-behaved clients an early, friendly answer.
"""

import logging
from dataclasses import dataclass
from typing import Union

from sqlalchemy.exc import IntegrityError

from depositflow.deposits.errors import DuplicateOpenDeposit
from depositflow.ledger.models import Deposit, DepositPurpose
from depositflow.ledger.repository import DepositRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class Blocked:
    existing_deposit_id: int


GuardResult = Union[Clear, Blocked]


class DuplicateGuard:
    """Check and enforce the one-open-deposit rule."""

    def __init__(self, repo: DepositRepository):
        self.repo = repo

    async def check_no_open_deposit(
        self, user_id: str, account_id: int, purpose: DepositPurpose
    ) -> GuardResult:
        """Advisory check. Not race-free on its own."""
        existing = await self.repo.find_open_deposit(account_id, DepositPurpose(purpose))
        if existing is None:
            return Clear()
        if existing.user_id != user_id:
            logger.warning(
                f"Open deposit {existing.id} on account {account_id} belongs to "
                f"user {existing.user_id}, not {user_id}"
            )
        return Blocked(existing_deposit_id=existing.id)

    async def ensure_clear(self, user_id: str, account_id: int, purpose: DepositPurpose) -> None:
        """Raise DuplicateOpenDeposit if the advisory check is blocked."""
        result = await self.check_no_open_deposit(user_id, account_id, purpose)
        if isinstance(result, Blocked):
            raise DuplicateOpenDeposit(result.existing_deposit_id)

    async def insert(self, deposit: Deposit) -> Deposit:
        """Insert a new open deposit under the uniqueness constraint.

        A concurrent submission that slipped past the advisory check loses
        here. The session is rolled back, so callers must not rely on other
        pending changes in the same transaction.
        """
        account_id = deposit.account_id
        purpose = DepositPurpose(deposit.purpose)
        try:
            return await self.repo.add_deposit(deposit)
        except IntegrityError:
            await self.repo.session.rollback()
            existing = await self.repo.find_open_deposit(account_id, purpose)
            if existing is None:
                raise
            logger.info(
                f"Concurrent submission rejected for account {account_id} "
                f"({purpose.value}): deposit {existing.id} already open"
            )
            raise DuplicateOpenDeposit(existing.id)
