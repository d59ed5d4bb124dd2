"""Deposit lifecycle events handed to the notification dispatcher."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from depositflow.ledger.models import Deposit, utcnow


class EventType(str, Enum):
    SUBMITTED = "deposit.submitted"
    AWAITING_CONFIRMATIONS = "deposit.awaiting_confirmations"
    CONFIRMED = "deposit.confirmed"
    COMPLETED = "deposit.completed"
    FAILED = "deposit.failed"
    REVERSED = "deposit.reversed"
    ON_HOLD = "deposit.on_hold"


@dataclass(frozen=True)
class DepositEvent:
    """Self-contained snapshot of a deposit at the moment of a transition."""

    type: EventType
    deposit_id: int
    user_id: str
    account_id: int
    currency: str
    network: str
    status: str
    purpose: str
    gross_amount: str
    fee_amount: str
    net_amount: str
    confirmations: int
    required_confirmations: int
    destination_address: str
    reason: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_deposit(
        cls, event_type: EventType, deposit: Deposit, reason: Optional[str] = None
    ) -> "DepositEvent":
        return cls(
            type=event_type,
            deposit_id=deposit.id,
            user_id=deposit.user_id,
            account_id=deposit.account_id,
            currency=deposit.asset.currency,
            network=deposit.asset.network,
            status=deposit.state.value,
            purpose=deposit.kind.value,
            gross_amount=str(deposit.gross_amount),
            fee_amount=str(deposit.fee_amount),
            net_amount=str(deposit.net_amount),
            confirmations=deposit.confirmations,
            required_confirmations=deposit.required_confirmations,
            destination_address=deposit.destination_address,
            reason=reason,
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready payload for the email service."""
        return {
            "event": self.type.value,
            "deposit_id": self.deposit_id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "currency": self.currency,
            "network": self.network,
            "status": self.status,
            "purpose": self.purpose,
            "gross_amount": self.gross_amount,
            "fee_amount": self.fee_amount,
            "net_amount": self.net_amount,
            "confirmations": self.confirmations,
            "required_confirmations": self.required_confirmations,
            "destination_address": self.destination_address,
            "reason": self.reason,
            "occurred_at": self.occurred_at.isoformat(),
        }
