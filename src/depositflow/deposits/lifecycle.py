"""Deposit lifecycle state machine.

    pending -> awaiting_confirmations -> confirmed -> completed -> reversed
       |              |                     |
       +--> on_hold <-+                     |
       |                                    |
       +------------------------------------+--> failed

``failed`` is reachable from every non-terminal state, ``reversed`` only from
``completed``. Terminal states accept no further transition except that
``complete`` on a completed deposit is a no-op, so at-least-once triggers
are safe.

The manager works inside the caller's session and never commits. Events are
buffered in ``self.events`` and must only be dispatched after the caller has
committed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm.exc import StaleDataError

from depositflow.deposits.errors import (
    ConcurrentDepositUpdate,
    DepositNotFound,
    IllegalTransition,
    MissingVerificationEvidence,
)
from depositflow.deposits.events import DepositEvent, EventType
from depositflow.deposits.guard import DuplicateGuard
from depositflow.ledger.models import (
    Account,
    AssetConfig,
    Deposit,
    DepositPurpose,
    DepositStatus,
    InstructionKind,
    WalletAssignment,
    utcnow,
)
from depositflow.ledger.repository import DepositRepository

logger = logging.getLogger(__name__)

_OPEN_FOR_FAIL = (
    DepositStatus.PENDING,
    DepositStatus.AWAITING_CONFIRMATIONS,
    DepositStatus.CONFIRMED,
    DepositStatus.ON_HOLD,
)
_OPEN_FOR_HOLD = (DepositStatus.PENDING, DepositStatus.AWAITING_CONFIRMATIONS)
_OPEN_FOR_APPROVE = (
    DepositStatus.PENDING,
    DepositStatus.AWAITING_CONFIRMATIONS,
    DepositStatus.ON_HOLD,
)

_EVENT_FOR_STATUS = {
    DepositStatus.AWAITING_CONFIRMATIONS: EventType.AWAITING_CONFIRMATIONS,
    DepositStatus.CONFIRMED: EventType.CONFIRMED,
    DepositStatus.COMPLETED: EventType.COMPLETED,
    DepositStatus.FAILED: EventType.FAILED,
    DepositStatus.REVERSED: EventType.REVERSED,
    DepositStatus.ON_HOLD: EventType.ON_HOLD,
}


class ConfirmationOutcome(str, Enum):
    """What happened to a single confirmation update."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"  # Same count as recorded
    STALE = "stale"  # Lower than recorded, ignored
    CONFLICT = "conflict"  # Deposit already terminal
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"  # Address matched several open deposits
    ERROR = "error"  # Unexpected failure, update not applied


@dataclass
class ConfirmationResult:
    deposit_id: Optional[int]
    outcome: ConfirmationOutcome
    status: Optional[str] = None
    confirmations: Optional[int] = None
    message: Optional[str] = None


@dataclass
class TransitionResult:
    deposit: Deposit
    changed: bool


class LifecycleManager:
    """Drives deposits through their lifecycle."""

    def __init__(self, repo: DepositRepository, auto_complete: bool = False):
        self.repo = repo
        self.guard = DuplicateGuard(repo)
        self.auto_complete = auto_complete
        self.events: list[DepositEvent] = []

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        *,
        user_id: str,
        account: Account,
        asset: AssetConfig,
        wallet: WalletAssignment,
        gross_amount: Decimal,
        fee_amount: Decimal,
        net_amount: Decimal,
        purpose: DepositPurpose,
        tx_reference: Optional[str] = None,
        proof_pointer: Optional[str] = None,
    ) -> Deposit:
        """Create a pending deposit.

        Raises:
            MissingVerificationEvidence: neither reference nor proof given.
            DuplicateOpenDeposit: another open deposit exists for the
                (account, purpose); enforced by the storage constraint.
        """
        if not tx_reference and not proof_pointer:
            raise MissingVerificationEvidence()
        if net_amount != gross_amount - fee_amount:
            raise ValueError(
                f"Inconsistent amounts: net {net_amount} != {gross_amount} - {fee_amount}"
            )

        deposit = Deposit(
            user_id=user_id,
            account_id=account.id,
            asset=asset,
            asset_id=asset.id,
            wallet_assignment_id=wallet.id,
            destination_address=wallet.address,
            destination_memo=wallet.memo,
            gross_amount=gross_amount,
            fee_amount=fee_amount,
            net_amount=net_amount,
            fee_percent=asset.fee_percent,
            required_confirmations=asset.required_confirmations,
            confirmations=0,
            tx_reference=tx_reference or None,
            proof_pointer=proof_pointer or None,
            status=DepositStatus.PENDING.value,
            purpose=DepositPurpose(purpose).value,
        )
        deposit = await self.guard.insert(deposit)
        await self.repo.add_transition(deposit, None, DepositStatus.PENDING.value, actor="user")
        self.events.append(DepositEvent.from_deposit(EventType.SUBMITTED, deposit))

        logger.info(
            f"Deposit {deposit.id} created: {gross_amount} {asset.pair} "
            f"(fee {fee_amount}, net {net_amount}) for account {account.id} [{deposit.purpose}]"
        )
        return deposit

    # ------------------------------------------------------------------
    # Confirmations
    # ------------------------------------------------------------------

    async def record_confirmation(
        self, deposit_id: int, confirmations: int, actor: str = "watcher"
    ) -> ConfirmationResult:
        """Apply a confirmation count reported by the chain watcher.

        Counts are monotonic: a lower count than already recorded is stale
        and ignored, an equal one is a duplicate. Reaching the threshold
        moves the deposit to ``confirmed`` exactly once.

        Raises:
            DepositNotFound, IllegalTransition (deposit already terminal).
        """
        if confirmations < 0:
            raise ValueError("Confirmation count cannot be negative")

        deposit = await self._load(deposit_id)
        state = deposit.state

        if deposit.is_terminal:
            raise IllegalTransition(deposit.id, state.value, "record confirmations on")

        if confirmations < deposit.confirmations:
            logger.warning(
                f"Stale confirmation update for deposit {deposit.id}: "
                f"{confirmations} < recorded {deposit.confirmations}"
            )
            return self._confirmation_result(deposit, ConfirmationOutcome.STALE)

        if confirmations == deposit.confirmations:
            return self._confirmation_result(deposit, ConfirmationOutcome.DUPLICATE)

        deposit.confirmations = confirmations

        if state in (DepositStatus.ON_HOLD, DepositStatus.CONFIRMED):
            # Count is tracked but the status only moves through review/complete
            await self._flush(deposit)
        elif confirmations >= deposit.required_confirmations:
            await self._transition(deposit, DepositStatus.CONFIRMED, actor=actor)
            if self.auto_complete:
                await self.complete(deposit.id, actor=actor)
        elif state == DepositStatus.PENDING:
            await self._transition(deposit, DepositStatus.AWAITING_CONFIRMATIONS, actor=actor)
        else:
            await self._flush(deposit)

        logger.debug(
            f"Deposit {deposit.id}: {confirmations}/{deposit.required_confirmations} "
            f"confirmations, status {deposit.status}"
        )
        return self._confirmation_result(deposit, ConfirmationOutcome.APPLIED)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def complete(self, deposit_id: int, actor: str = "system") -> TransitionResult:
        """Credit the net amount and mark the deposit completed.

        Idempotent: completing a completed deposit changes nothing and issues
        no second credit.
        """
        deposit = await self._load(deposit_id)
        state = deposit.state

        if state == DepositStatus.COMPLETED:
            logger.info(f"Deposit {deposit.id} already completed, ignoring")
            return TransitionResult(deposit, changed=False)
        if state != DepositStatus.CONFIRMED:
            raise IllegalTransition(deposit.id, state.value, "complete")

        await self.repo.add_instruction(deposit, InstructionKind.CREDIT, deposit.net_amount)
        await self._transition(deposit, DepositStatus.COMPLETED, actor=actor)

        logger.info(
            f"Deposit {deposit.id} completed: credit {deposit.net_amount} "
            f"{deposit.asset.currency} to account {deposit.account_id}"
        )
        return TransitionResult(deposit, changed=True)

    async def fail(self, deposit_id: int, reason: str, actor: str = "reviewer") -> TransitionResult:
        """Terminally reject an open deposit."""
        deposit = await self._load(deposit_id)
        if deposit.state not in _OPEN_FOR_FAIL:
            raise IllegalTransition(deposit.id, deposit.state.value, "fail")

        await self._transition(deposit, DepositStatus.FAILED, reason=reason, actor=actor)
        logger.info(f"Deposit {deposit.id} failed: {reason}")
        return TransitionResult(deposit, changed=True)

    async def reverse(self, deposit_id: int, reason: str, actor: str = "reviewer") -> TransitionResult:
        """Take back a completed credit with a mirroring debit."""
        deposit = await self._load(deposit_id)
        if deposit.state != DepositStatus.COMPLETED:
            raise IllegalTransition(deposit.id, deposit.state.value, "reverse")

        credit = await self.repo.get_instruction(deposit.id, InstructionKind.CREDIT)
        amount = credit.amount if credit is not None else deposit.net_amount

        await self.repo.add_instruction(deposit, InstructionKind.DEBIT, amount)
        await self._transition(deposit, DepositStatus.REVERSED, reason=reason, actor=actor)

        logger.warning(
            f"Deposit {deposit.id} reversed: debit {amount} {deposit.asset.currency} "
            f"from account {deposit.account_id} ({reason})"
        )
        return TransitionResult(deposit, changed=True)

    async def hold(self, deposit_id: int, reason: str, actor: str = "reviewer") -> TransitionResult:
        """Park a deposit for manual review."""
        deposit = await self._load(deposit_id)
        if deposit.state not in _OPEN_FOR_HOLD:
            raise IllegalTransition(deposit.id, deposit.state.value, "hold")

        await self._transition(deposit, DepositStatus.ON_HOLD, reason=reason, actor=actor)
        return TransitionResult(deposit, changed=True)

    async def release(self, deposit_id: int, reason: str, actor: str = "reviewer") -> TransitionResult:
        """Return a held deposit to the status its confirmation count implies."""
        deposit = await self._load(deposit_id)
        if deposit.state != DepositStatus.ON_HOLD:
            raise IllegalTransition(deposit.id, deposit.state.value, "release")

        if deposit.confirmations >= deposit.required_confirmations:
            target = DepositStatus.CONFIRMED
        elif deposit.confirmations > 0:
            target = DepositStatus.AWAITING_CONFIRMATIONS
        else:
            target = DepositStatus.PENDING

        await self._transition(deposit, target, reason=reason, actor=actor)
        return TransitionResult(deposit, changed=True)

    async def approve(self, deposit_id: int, reason: str, actor: str = "reviewer") -> TransitionResult:
        """Reviewer accepts the evidence: confirm if needed, then complete."""
        deposit = await self._load(deposit_id)
        state = deposit.state

        if state == DepositStatus.COMPLETED:
            logger.info(f"Deposit {deposit.id} already completed, approval ignored")
            return TransitionResult(deposit, changed=False)
        if state in _OPEN_FOR_APPROVE:
            await self._transition(deposit, DepositStatus.CONFIRMED, reason=reason, actor=actor)
        elif state != DepositStatus.CONFIRMED:
            raise IllegalTransition(deposit.id, state.value, "approve")

        return await self.complete(deposit.id, actor=actor)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, deposit_id: int) -> Deposit:
        deposit = await self.repo.get_deposit(deposit_id, for_update=True)
        if deposit is None:
            raise DepositNotFound(deposit_id)
        return deposit

    async def _flush(self, deposit: Deposit) -> None:
        try:
            await self.repo.session.flush()
        except StaleDataError as e:
            raise ConcurrentDepositUpdate(deposit.id) from e

    async def _transition(
        self,
        deposit: Deposit,
        to_status: DepositStatus,
        reason: Optional[str] = None,
        actor: str = "system",
    ) -> None:
        from_status = deposit.state
        now = utcnow()

        deposit.status = to_status.value
        if reason is not None:
            deposit.status_reason = reason
        self._stamp(deposit, to_status, now)

        await self._flush(deposit)
        await self.repo.add_transition(
            deposit, from_status.value, to_status.value, reason=reason, actor=actor
        )
        event_type = _EVENT_FOR_STATUS.get(to_status)
        if event_type is not None:  # Release back to pending is silent
            self.events.append(DepositEvent.from_deposit(event_type, deposit, reason))

    @staticmethod
    def _stamp(deposit: Deposit, to_status: DepositStatus, now: datetime) -> None:
        if to_status == DepositStatus.CONFIRMED and deposit.confirmed_at is None:
            deposit.confirmed_at = now
        elif to_status == DepositStatus.COMPLETED:
            deposit.completed_at = now
        elif to_status in (DepositStatus.FAILED, DepositStatus.REVERSED):
            deposit.resolved_at = now

    @staticmethod
    def _confirmation_result(deposit: Deposit, outcome: ConfirmationOutcome) -> ConfirmationResult:
        return ConfirmationResult(
            deposit_id=deposit.id,
            outcome=outcome,
            status=deposit.state.value,
            confirmations=deposit.confirmations,
        )
