"""Services wrapping the deposit engine for API and workers."""

from depositflow.services.deposit_service import (
    ConfirmationUpdate,
    DepositAddress,
    DepositService,
    ReviewDecision,
)
from depositflow.services.outbox import LedgerOutboxForwarder

__all__ = [
    "ConfirmationUpdate",
    "DepositAddress",
    "DepositService",
    "ReviewDecision",
    "LedgerOutboxForwarder",
]
