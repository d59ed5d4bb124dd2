"""Fee and net-amount arithmetic.

Pure functions shared by quoting, validation and submission so every path
computes the same numbers.
"""

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

HUNDRED = Decimal("100")
DEFAULT_PRECISION = 2


def quantum(precision: int = DEFAULT_PRECISION) -> Decimal:
    """Smallest representable step at a precision, e.g. 0.01 for 2."""
    return Decimal(1).scaleb(-precision)


def _check_fee_percent(fee_percent: Decimal) -> None:
    if fee_percent < 0 or fee_percent >= HUNDRED:
        raise ValueError(f"Fee percent must be in [0, 100): {fee_percent}")


def compute_fee(gross: Decimal, fee_percent: Decimal, precision: int = DEFAULT_PRECISION) -> Decimal:
    """Fee charged on a gross amount, rounded half-up to the currency precision."""
    _check_fee_percent(fee_percent)
    return (gross * fee_percent / HUNDRED).quantize(quantum(precision), rounding=ROUND_HALF_UP)


def compute_net(gross: Decimal, fee: Decimal) -> Decimal:
    """Amount credited after the fee. Never negative."""
    return max(Decimal("0"), gross - fee)


def compute_required_gross(
    target_net: Decimal,
    fee_percent: Decimal,
    precision: int = DEFAULT_PRECISION,
    buffer: Decimal = Decimal("0.01"),
) -> Decimal:
    """Smallest suggested gross whose net covers ``target_net``.

    The ceiling plus ``buffer`` deliberately over-shoots; the loop only
    matters for very high fee percents where half-up fee rounding could
    still leave the net a quantum short.
    """
    _check_fee_percent(fee_percent)
    if target_net <= 0:
        return Decimal("0").quantize(quantum(precision))

    step = quantum(precision)
    ratio = 1 - fee_percent / HUNDRED
    gross = (target_net / ratio).quantize(step, rounding=ROUND_CEILING) + buffer
    gross = gross.quantize(step, rounding=ROUND_CEILING)

    while compute_net(gross, compute_fee(gross, fee_percent, precision)) < target_net:
        gross += step
    return gross


def fee_breakdown(gross: Decimal, fee_percent: Decimal, precision: int = DEFAULT_PRECISION) -> tuple[Decimal, Decimal]:
    """Return ``(fee, net)`` for a gross amount."""
    fee = compute_fee(gross, fee_percent, precision)
    return fee, compute_net(gross, fee)
