"""Minimum-deposit satisfaction check for account-activation deposits."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from depositflow.deposits.fees import DEFAULT_PRECISION, compute_required_gross, fee_breakdown
from depositflow.ledger.models import DepositPurpose

ONE_CENT = Decimal("0.01")


@dataclass(frozen=True)
class Sufficient:
    """The proposed amount closes the activation gap.

    ``already_funded`` is set when there was no gap to begin with, which the
    caller should treat as its own error rather than a financial shortfall.
    """

    net_amount: Decimal
    remaining_needed: Decimal
    already_funded: bool = False


@dataclass(frozen=True)
class Insufficient:
    """The net amount falls short; ``required_gross`` is the corrected amount."""

    net_amount: Decimal
    remaining_needed: Decimal
    shortfall: Decimal
    required_gross: Decimal


ValidationResult = Union[Sufficient, Insufficient]


def validate(
    purpose: DepositPurpose,
    account_balance: Decimal,
    account_minimum: Decimal,
    proposed_gross: Decimal,
    fee_percent: Decimal,
    precision: int = DEFAULT_PRECISION,
    tolerance: Decimal = ONE_CENT,
    rounding_buffer: Decimal = ONE_CENT,
) -> ValidationResult:
    """Check whether ``proposed_gross`` funds the remaining activation minimum."""
    _, net = fee_breakdown(proposed_gross, fee_percent, precision)
    remaining = max(Decimal("0"), account_minimum - account_balance)

    if DepositPurpose(purpose) != DepositPurpose.ACTIVATION:
        return Sufficient(net_amount=net, remaining_needed=remaining)

    if remaining == 0:
        return Sufficient(net_amount=net, remaining_needed=remaining, already_funded=True)

    if net + tolerance >= remaining:
        return Sufficient(net_amount=net, remaining_needed=remaining)

    return Insufficient(
        net_amount=net,
        remaining_needed=remaining,
        shortfall=remaining - net,
        required_gross=compute_required_gross(remaining, fee_percent, precision, rounding_buffer),
    )
