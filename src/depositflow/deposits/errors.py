"""Deposit engine errors.

Two families:

- validation errors are returned to the submitter with enough structured
  detail to self-correct;
- integrity errors are logged with full context and surfaced as opaque
  failures.
"""

from decimal import Decimal
from typing import Any, Optional


class DepositError(Exception):
    """Base class for deposit engine errors."""

    code = "deposit_error"
    http_status = 400

    def to_detail(self) -> dict[str, Any]:
        """Structured body safe to return to callers."""
        return {"error": self.code, "message": str(self)}


class DepositValidationError(DepositError):
    """Recoverable, caller-correctable rejection."""

    http_status = 422


class DepositIntegrityError(DepositError):
    """Configuration or state conflict. Never retried blindly."""

    http_status = 409
    public_message = "The deposit could not be processed"

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.public_message}


class DepositNotFound(DepositError):
    code = "deposit_not_found"
    http_status = 404

    def __init__(self, deposit_id: int):
        self.deposit_id = deposit_id
        super().__init__(f"Deposit {deposit_id} not found")


class AccountNotFound(DepositError):
    code = "account_not_found"
    http_status = 404

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


# Validation class


class DuplicateOpenDeposit(DepositValidationError):
    """An open deposit already exists for the (account, purpose)."""

    code = "duplicate_open_deposit"
    http_status = 409

    def __init__(self, existing_deposit_id: int):
        self.existing_deposit_id = existing_deposit_id
        super().__init__(
            f"Deposit {existing_deposit_id} is still open for this account and purpose"
        )

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["existing_deposit_id"] = self.existing_deposit_id
        return detail


class InsufficientForActivation(DepositValidationError):
    """Net amount would not close the activation gap."""

    code = "insufficient_for_activation"

    def __init__(self, shortfall: Decimal, required_gross: Decimal):
        self.shortfall = shortfall
        self.required_gross = required_gross
        super().__init__(
            f"Net amount falls {shortfall} short of the activation minimum; "
            f"submit at least {required_gross}"
        )

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["shortfall"] = str(self.shortfall)
        detail["required_gross"] = str(self.required_gross)
        return detail


class MissingVerificationEvidence(DepositValidationError):
    code = "missing_verification_evidence"

    def __init__(self):
        super().__init__("Provide a transaction reference or upload a payment proof")


class InvalidAmount(DepositValidationError):
    code = "invalid_amount"


class BelowMinimumDeposit(DepositValidationError):
    code = "below_minimum_deposit"

    def __init__(self, minimum: Decimal, currency: str):
        self.minimum = minimum
        self.currency = currency
        super().__init__(f"Minimum deposit amount is {minimum} {currency}")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["minimum"] = str(self.minimum)
        return detail


class AccountAlreadyFunded(DepositValidationError):
    """Activation deposit requested for an account that met its threshold."""

    code = "account_already_funded"
    http_status = 409

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account {account_id} already meets its minimum deposit")


# Integrity class


class UnsupportedAsset(DepositIntegrityError):
    code = "unsupported_asset"
    http_status = 400
    public_message = "This currency and network combination is not available"

    def __init__(self, currency: str, network: str):
        self.currency = currency
        self.network = network
        super().__init__(f"No active asset config for {currency}/{network}")


class NoWalletAvailable(DepositIntegrityError):
    code = "no_wallet_available"
    http_status = 503
    public_message = "No deposit address is available for this asset, please contact support"

    def __init__(self, currency: str, network: str, mode: str, user_id: Optional[str] = None):
        self.currency = currency
        self.network = network
        self.mode = mode
        self.user_id = user_id
        super().__init__(
            f"No {mode} wallet provisioned for {currency}/{network} (user {user_id or '-'})"
        )


class IllegalTransition(DepositIntegrityError):
    """A lifecycle operation was attempted from a state that does not allow it."""

    code = "illegal_transition"
    public_message = "The deposit is not in a state that allows this operation"

    def __init__(self, deposit_id: int, status: str, action: str):
        self.deposit_id = deposit_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} deposit {deposit_id} in status {status}")


class ConcurrentDepositUpdate(DepositIntegrityError):
    """Another writer changed the deposit between read and write."""

    code = "concurrent_update"
    public_message = "The deposit was modified concurrently, reload and retry"

    def __init__(self, deposit_id: int):
        self.deposit_id = deposit_id
        super().__init__(f"Deposit {deposit_id} was updated concurrently")
