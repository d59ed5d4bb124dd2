"""Tests for the activation minimum-deposit validator."""

from decimal import Decimal

from depositflow.deposits.validator import Insufficient, Sufficient, validate
from depositflow.ledger.models import DepositPurpose


class TestActivationValidator:
    """Tests for activation deposits."""

    def test_net_short_of_remaining(self):
        """Test balance 400, minimum 500, 2% fee, gross 102.00."""
        result = validate(
            DepositPurpose.ACTIVATION,
            account_balance=Decimal("400"),
            account_minimum=Decimal("500"),
            proposed_gross=Decimal("102.00"),
            fee_percent=Decimal("2"),
        )

        assert isinstance(result, Insufficient)
        assert result.net_amount == Decimal("99.96")
        assert result.remaining_needed == Decimal("100")
        assert result.shortfall == Decimal("0.04")
        assert result.required_gross == Decimal("102.06")

    def test_required_gross_is_sufficient(self):
        """Test that resubmitting the suggested gross passes."""
        result = validate(
            DepositPurpose.ACTIVATION,
            account_balance=Decimal("400"),
            account_minimum=Decimal("500"),
            proposed_gross=Decimal("102.06"),
            fee_percent=Decimal("2"),
        )

        assert isinstance(result, Sufficient)
        assert not result.already_funded
        assert result.net_amount == Decimal("100.02")

    def test_one_cent_tolerance(self):
        """Test a one-cent shortfall is absorbed."""
        # 102.03 -> fee 2.04, net 99.99
        result = validate(
            DepositPurpose.ACTIVATION,
            account_balance=Decimal("400"),
            account_minimum=Decimal("500"),
            proposed_gross=Decimal("102.03"),
            fee_percent=Decimal("2"),
        )
        assert isinstance(result, Sufficient)

    def test_zero_tolerance(self):
        """Test strict comparison when tolerance is disabled."""
        result = validate(
            DepositPurpose.ACTIVATION,
            account_balance=Decimal("400"),
            account_minimum=Decimal("500"),
            proposed_gross=Decimal("102.03"),
            fee_percent=Decimal("2"),
            tolerance=Decimal("0"),
        )
        assert isinstance(result, Insufficient)
        assert result.shortfall == Decimal("0.01")

    def test_already_funded(self):
        """Test an account at or above its minimum is flagged."""
        result = validate(
            DepositPurpose.ACTIVATION,
            account_balance=Decimal("600"),
            account_minimum=Decimal("500"),
            proposed_gross=Decimal("10"),
            fee_percent=Decimal("2"),
        )

        assert isinstance(result, Sufficient)
        assert result.already_funded
        assert result.remaining_needed == Decimal("0")


class TestGeneralDeposits:
    """Tests for non-activation deposits."""

    def test_general_is_always_sufficient(self):
        result = validate(
            DepositPurpose.GENERAL,
            account_balance=Decimal("0"),
            account_minimum=Decimal("500"),
            proposed_gross=Decimal("1"),
            fee_percent=Decimal("2"),
        )
        assert isinstance(result, Sufficient)
        assert not result.already_funded
