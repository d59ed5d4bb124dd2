"""Deposit intake and confirmation-reconciliation engine."""

from depositflow.deposits.errors import (
    DepositError,
    DepositIntegrityError,
    DepositValidationError,
)
from depositflow.deposits.lifecycle import (
    ConfirmationOutcome,
    ConfirmationResult,
    LifecycleManager,
)
from depositflow.deposits.submission import SubmissionRequest, SubmissionResult, SubmissionService

__all__ = [
    "DepositError",
    "DepositIntegrityError",
    "DepositValidationError",
    "ConfirmationOutcome",
    "ConfirmationResult",
    "LifecycleManager",
    "SubmissionRequest",
    "SubmissionResult",
    "SubmissionService",
]
