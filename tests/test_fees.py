"""Tests for fee and net-amount arithmetic."""

from decimal import Decimal

import pytest

from depositflow.deposits.fees import (
    compute_fee,
    compute_net,
    compute_required_gross,
    fee_breakdown,
    quantum,
)


class TestComputeFee:
    """Tests for fee rounding."""

    def test_two_percent_of_102(self):
        """Test the fee on a typical activation amount."""
        assert compute_fee(Decimal("102.00"), Decimal("2")) == Decimal("2.04")

    def test_rounds_half_up(self):
        """Test that exact halves round away from zero."""
        # 0.125 -> 0.13
        assert compute_fee(Decimal("12.50"), Decimal("1")) == Decimal("0.13")

    def test_zero_fee(self):
        """Test zero fee percent."""
        assert compute_fee(Decimal("100"), Decimal("0")) == Decimal("0.00")

    def test_respects_precision(self):
        """Test rounding at a crypto precision."""
        fee = compute_fee(Decimal("0.12345678"), Decimal("1.5"), precision=8)
        assert fee == Decimal("0.00185185")

    @pytest.mark.parametrize("fee_percent", ["-1", "100", "150"])
    def test_rejects_out_of_range_percent(self, fee_percent):
        """Test fee percent outside [0, 100) is rejected."""
        with pytest.raises(ValueError):
            compute_fee(Decimal("10"), Decimal(fee_percent))


class TestComputeNet:
    """Tests for net amounts."""

    def test_net_is_gross_minus_fee(self):
        fee, net = fee_breakdown(Decimal("102.00"), Decimal("2"))
        assert fee == Decimal("2.04")
        assert net == Decimal("99.96")
        assert net == Decimal("102.00") - fee

    def test_net_never_negative(self):
        """Test that a fee larger than gross clamps to zero."""
        assert compute_net(Decimal("1.00"), Decimal("5.00")) == Decimal("0")


class TestRequiredGross:
    """Tests for the inverse calculation."""

    def test_activation_example_with_default_buffer(self):
        """Test 100 net at 2% needs 102.06 gross with the one-cent buffer."""
        assert compute_required_gross(Decimal("100"), Decimal("2")) == Decimal("102.06")

    def test_activation_example_without_buffer(self):
        """Test the bare ceiling without buffer."""
        assert compute_required_gross(Decimal("100"), Decimal("2"), buffer=Decimal("0")) == Decimal(
            "102.05"
        )

    def test_zero_target(self):
        assert compute_required_gross(Decimal("0"), Decimal("2")) == Decimal("0.00")

    def test_inverse_never_undershoots(self):
        """Test net(required_gross(t, f)) >= t across fees and targets."""
        targets = [Decimal("0.01"), Decimal("1"), Decimal("99.99"), Decimal("100"), Decimal("12345.67")]
        fees = [Decimal("0"), Decimal("0.5"), Decimal("2"), Decimal("33.3"), Decimal("75"), Decimal("99.5")]

        for target in targets:
            for fee_percent in fees:
                for buffer in (Decimal("0"), Decimal("0.01")):
                    gross = compute_required_gross(target, fee_percent, buffer=buffer)
                    _, net = fee_breakdown(gross, fee_percent)
                    assert net >= target, (target, fee_percent, buffer, gross, net)

    def test_quantum(self):
        assert quantum(2) == Decimal("0.01")
        assert quantum(8) == Decimal("0.00000001")
