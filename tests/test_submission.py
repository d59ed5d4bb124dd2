"""Tests for the deposit submission flow."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from depositflow.deposits.errors import (
    AccountAlreadyFunded,
    AccountNotFound,
    BelowMinimumDeposit,
    DuplicateOpenDeposit,
    InsufficientForActivation,
    InvalidAmount,
    MissingVerificationEvidence,
    NoWalletAvailable,
    UnsupportedAsset,
)
from depositflow.deposits.events import EventType
from depositflow.deposits.submission import SubmissionRequest, SubmissionService
from depositflow.ledger.models import DepositPurpose
from depositflow.ledger.repository import DepositRepository


def make_request(seeded, **overrides) -> SubmissionRequest:
    values = dict(
        user_id="user-1",
        account_id=seeded.account_id,
        currency="USDT",
        network="TRC20",
        gross_amount=Decimal("102.06"),
        purpose=DepositPurpose.GENERAL,
        tx_reference="0xabc",
    )
    values.update(overrides)
    return SubmissionRequest(**values)


class TestSubmit:
    """Tests for SubmissionService.submit."""

    @pytest.mark.asyncio
    async def test_general_deposit(self, repo: DepositRepository, seeded, db_session):
        """Test a general deposit goes to the personal wallet."""
        service = SubmissionService(repo)
        result = await service.submit(make_request(seeded))
        await db_session.commit()

        assert result.status == "pending"
        assert result.purpose == "general"
        assert result.destination_address == "TPersonalAddr0001"
        assert result.gross_amount == Decimal("102.06")
        assert result.fee_amount == Decimal("2.04")
        assert result.net_amount == Decimal("100.02")
        assert result.required_confirmations == 3

        assert [e.type for e in service.events] == [EventType.SUBMITTED]
        assert service.events[0].deposit_id == result.deposit_id

    @pytest.mark.asyncio
    async def test_missing_evidence_writes_nothing(self, repo: DepositRepository, seeded):
        """Test no evidence is rejected before any lookup."""
        service = SubmissionService(repo)
        service.resolver.resolve = AsyncMock()
        service.registry.lookup = AsyncMock()

        with pytest.raises(MissingVerificationEvidence):
            await service.submit(make_request(seeded, tx_reference=None, proof_pointer=""))

        service.registry.lookup.assert_not_called()
        service.resolver.resolve.assert_not_called()
        assert await repo.get_user_deposits("user-1") == []
        assert service.events == []

    @pytest.mark.asyncio
    async def test_proof_only_accepted(self, repo: DepositRepository, seeded):
        service = SubmissionService(repo)
        result = await service.submit(
            make_request(seeded, tx_reference=None, proof_pointer="proofs/receipt-1.pdf")
        )

        deposit = await repo.get_deposit(result.deposit_id)
        assert deposit.proof_pointer == "proofs/receipt-1.pdf"

    @pytest.mark.asyncio
    async def test_unsupported_asset(self, repo: DepositRepository, seeded):
        with pytest.raises(UnsupportedAsset) as exc_info:
            await SubmissionService(repo).submit(make_request(seeded, network="ERC20"))

        detail = exc_info.value.to_detail()
        assert detail["error"] == "unsupported_asset"
        assert "ERC20" not in detail["message"]

    @pytest.mark.asyncio
    async def test_duplicate_open_deposit(self, repo: DepositRepository, seeded, db_session):
        """Test a second general deposit is rejected while the first is open."""
        first = await SubmissionService(repo).submit(make_request(seeded))
        await db_session.commit()

        with pytest.raises(DuplicateOpenDeposit) as exc_info:
            await SubmissionService(repo).submit(make_request(seeded, tx_reference="0xother"))

        assert exc_info.value.existing_deposit_id == first.deposit_id

    @pytest.mark.asyncio
    async def test_below_minimum(self, repo: DepositRepository, seeded):
        with pytest.raises(BelowMinimumDeposit) as exc_info:
            await SubmissionService(repo).submit(make_request(seeded, gross_amount=Decimal("0.50")))

        assert exc_info.value.to_detail()["minimum"] == "1"

    @pytest.mark.parametrize("amount", ["0", "-5", "NaN", "10.001"])
    @pytest.mark.asyncio
    async def test_invalid_amounts(self, repo: DepositRepository, seeded, amount):
        with pytest.raises(InvalidAmount):
            await SubmissionService(repo).submit(make_request(seeded, gross_amount=Decimal(amount)))

        assert await repo.get_user_deposits("user-1") == []

    @pytest.mark.asyncio
    async def test_other_users_account(self, repo: DepositRepository, seeded):
        with pytest.raises(AccountNotFound):
            await SubmissionService(repo).submit(make_request(seeded, user_id="user-2"))

    @pytest.mark.asyncio
    async def test_wallet_assignment_verified(self, repo: DepositRepository, seeded):
        """Test a submitted wallet id must belong to the depositor."""
        service = SubmissionService(repo)
        with pytest.raises(NoWalletAvailable):
            await service.submit(
                make_request(seeded, wallet_assignment_id=seeded.pool_wallet_ids[0])
            )

        result = await service.submit(
            make_request(seeded, wallet_assignment_id=seeded.personal_wallet_id)
        )
        assert result.destination_address == "TPersonalAddr0001"


class TestActivation:
    """Tests for activation deposits."""

    @pytest.mark.asyncio
    async def test_insufficient_suggests_required_gross(self, repo: DepositRepository, seeded):
        """Test balance 400, minimum 500, fee 2% and gross 102.00."""
        request = make_request(
            seeded, purpose=DepositPurpose.ACTIVATION, gross_amount=Decimal("102.00")
        )

        with pytest.raises(InsufficientForActivation) as exc_info:
            await SubmissionService(repo).submit(request)

        assert exc_info.value.shortfall == Decimal("0.04")
        assert exc_info.value.required_gross == Decimal("102.06")
        detail = exc_info.value.to_detail()
        assert detail["required_gross"] == "102.06"
        assert await repo.get_user_deposits("user-1") == []

    @pytest.mark.asyncio
    async def test_sufficient_uses_pool_wallet(self, repo: DepositRepository, seeded):
        request = make_request(seeded, purpose=DepositPurpose.ACTIVATION)

        result = await SubmissionService(repo).submit(request)

        assert result.purpose == "activation"
        assert result.net_amount == Decimal("100.02")
        assert result.destination_address in {"TPoolAddr0001", "TPoolAddr0002"}

    @pytest.mark.asyncio
    async def test_one_cent_tolerance(self, repo: DepositRepository, seeded):
        """Test net 99.99 against 100 remaining passes."""
        request = make_request(
            seeded, purpose=DepositPurpose.ACTIVATION, gross_amount=Decimal("102.03")
        )

        result = await SubmissionService(repo).submit(request)

        assert result.net_amount == Decimal("99.99")

    @pytest.mark.asyncio
    async def test_tolerance_follows_asset_precision(self, repo: DepositRepository, seeded, db_session):
        """Test an 8-decimal asset absorbs one satoshi of shortfall, not one cent."""
        await repo.upsert_asset(
            "BTC", "BTC", Decimal("0.0001"), Decimal("0"), 2, amount_precision=8
        )
        await db_session.commit()
        service = SubmissionService(repo)

        request = make_request(
            seeded,
            currency="BTC",
            network="BTC",
            purpose=DepositPurpose.ACTIVATION,
            gross_amount=Decimal("99.995"),
        )
        with pytest.raises(InsufficientForActivation) as exc_info:
            await service.submit(request)

        assert exc_info.value.shortfall == Decimal("0.005")
        assert exc_info.value.required_gross == Decimal("100.00000001")

        quote = await service.activation_quote("user-1", seeded.account_id, "BTC", "BTC")
        assert quote.required_gross == Decimal("100.00000001")

    @pytest.mark.asyncio
    async def test_already_funded(self, repo: DepositRepository, seeded, db_session):
        account = await repo.create_account(
            user_id="user-1",
            account_number="ACC-user-1-funded",
            balance=Decimal("600"),
            min_deposit=Decimal("500"),
        )
        await db_session.commit()

        request = make_request(
            seeded, account_id=account.id, purpose=DepositPurpose.ACTIVATION
        )
        with pytest.raises(AccountAlreadyFunded):
            await SubmissionService(repo).submit(request)

    @pytest.mark.asyncio
    async def test_general_and_activation_coexist(self, repo: DepositRepository, seeded):
        service = SubmissionService(repo)
        await service.submit(make_request(seeded))
        await service.submit(make_request(seeded, purpose=DepositPurpose.ACTIVATION))

        assert len(await repo.get_user_deposits("user-1")) == 2


class TestQuotes:
    """Tests for fee and activation quotes."""

    @pytest.mark.asyncio
    async def test_fee_quote(self, repo: DepositRepository, seeded):
        quote = await SubmissionService(repo).quote("usdt", "trc20", Decimal("102.00"))

        assert quote.fee_amount == Decimal("2.04")
        assert quote.net_amount == Decimal("99.96")
        assert quote.min_deposit == Decimal("1")

    @pytest.mark.asyncio
    async def test_fee_quote_rejects_zero(self, repo: DepositRepository, seeded):
        with pytest.raises(InvalidAmount):
            await SubmissionService(repo).quote("USDT", "TRC20", Decimal("0"))

    @pytest.mark.asyncio
    async def test_activation_quote(self, repo: DepositRepository, seeded):
        quote = await SubmissionService(repo).activation_quote(
            "user-1", seeded.account_id, "USDT", "TRC20"
        )

        assert quote.remaining == Decimal("100")
        assert quote.required_gross == Decimal("102.06")
        assert quote.already_funded is False
