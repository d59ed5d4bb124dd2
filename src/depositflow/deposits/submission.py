"""Deposit submission flow and fee quotes.

Validation runs before anything is written. Integrity failures (asset,
wallet) are raised as-is so the API layer logs them and answers opaquely.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from depositflow.config import Settings, get_settings
from depositflow.deposits.errors import (
    AccountAlreadyFunded,
    AccountNotFound,
    BelowMinimumDeposit,
    InsufficientForActivation,
    InvalidAmount,
    MissingVerificationEvidence,
)
from depositflow.deposits.events import DepositEvent
from depositflow.deposits.fees import compute_required_gross, fee_breakdown, quantum
from depositflow.deposits.guard import DuplicateGuard
from depositflow.deposits.lifecycle import LifecycleManager
from depositflow.deposits.registry import AssetRegistry
from depositflow.deposits.validator import Insufficient, validate
from depositflow.deposits.wallets import ResolveMode, WalletResolver
from depositflow.ledger.models import Account, AssetConfig, DepositPurpose
from depositflow.ledger.repository import DepositRepository

logger = logging.getLogger(__name__)


@dataclass
class SubmissionRequest:
    user_id: str
    account_id: int
    currency: str
    network: str
    gross_amount: Decimal
    purpose: DepositPurpose = DepositPurpose.GENERAL
    tx_reference: Optional[str] = None
    proof_pointer: Optional[str] = None
    wallet_assignment_id: Optional[int] = None


@dataclass
class SubmissionResult:
    """Plain values describing the created deposit, safe to use after commit."""

    deposit_id: int
    status: str
    purpose: str
    currency: str
    network: str
    destination_address: str
    destination_memo: Optional[str]
    gross_amount: Decimal
    fee_amount: Decimal
    net_amount: Decimal
    fee_percent: Decimal
    required_confirmations: int
    created_at: datetime


@dataclass
class FeeQuote:
    currency: str
    network: str
    gross_amount: Decimal
    fee_percent: Decimal
    fee_amount: Decimal
    net_amount: Decimal
    min_deposit: Decimal


@dataclass
class ActivationQuote:
    account_id: int
    currency: str
    network: str
    balance: Decimal
    min_deposit: Decimal
    remaining: Decimal
    fee_percent: Decimal
    required_gross: Decimal
    already_funded: bool


class SubmissionService:
    """Validate and record deposit submissions inside one session.

    The caller commits and then dispatches ``self.events``.
    """

    def __init__(
        self,
        repo: DepositRepository,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.repo = repo
        self.settings = settings or get_settings()
        self.registry = AssetRegistry(repo)
        self.guard = DuplicateGuard(repo)
        self.resolver = WalletResolver(repo, rng=rng)
        self.lifecycle = LifecycleManager(repo, auto_complete=self.settings.auto_complete_confirmed)

    @property
    def events(self) -> list[DepositEvent]:
        return self.lifecycle.events

    async def submit(self, request: SubmissionRequest) -> SubmissionResult:
        """Run the full submission flow and create a pending deposit.

        Raises:
            MissingVerificationEvidence, UnsupportedAsset, AccountNotFound,
            DuplicateOpenDeposit, InvalidAmount, BelowMinimumDeposit,
            InsufficientForActivation, AccountAlreadyFunded, NoWalletAvailable
        """
        purpose = DepositPurpose(request.purpose)

        # No evidence means nothing else is looked at
        if not request.tx_reference and not request.proof_pointer:
            raise MissingVerificationEvidence()

        asset = await self.registry.lookup(request.currency, request.network)
        account = await self._get_account(request.user_id, request.account_id)

        await self.guard.ensure_clear(request.user_id, account.id, purpose)

        gross = request.gross_amount
        if gross is None or not gross.is_finite() or gross <= 0:
            raise InvalidAmount("Deposit amount must be a positive number")
        if gross != gross.quantize(quantum(asset.amount_precision)):
            raise InvalidAmount(
                f"{asset.currency} amounts allow at most {asset.amount_precision} decimal places"
            )
        if gross < asset.min_deposit:
            raise BelowMinimumDeposit(asset.min_deposit, asset.currency)

        fee, net = fee_breakdown(gross, asset.fee_percent, asset.amount_precision)

        if purpose == DepositPurpose.ACTIVATION:
            self._check_activation(account, asset, gross)

        mode = ResolveMode.for_purpose(purpose)
        if request.wallet_assignment_id is not None:
            wallet = await self.resolver.verify(
                request.wallet_assignment_id, asset, request.user_id, mode
            )
        else:
            wallet = await self.resolver.resolve(asset, request.user_id, mode)

        deposit = await self.lifecycle.create(
            user_id=request.user_id,
            account=account,
            asset=asset,
            wallet=wallet,
            gross_amount=gross,
            fee_amount=fee,
            net_amount=net,
            purpose=purpose,
            tx_reference=request.tx_reference,
            proof_pointer=request.proof_pointer,
        )

        return SubmissionResult(
            deposit_id=deposit.id,
            status=deposit.state.value,
            purpose=deposit.kind.value,
            currency=asset.currency,
            network=asset.network,
            destination_address=deposit.destination_address,
            destination_memo=deposit.destination_memo,
            gross_amount=deposit.gross_amount,
            fee_amount=deposit.fee_amount,
            net_amount=deposit.net_amount,
            fee_percent=deposit.fee_percent,
            required_confirmations=deposit.required_confirmations,
            created_at=deposit.created_at,
        )

    async def quote(self, currency: str, network: str, gross_amount: Decimal) -> FeeQuote:
        """Preview fee and net for an amount. Writes nothing."""
        asset = await self.registry.lookup(currency, network)
        if gross_amount is None or not gross_amount.is_finite() or gross_amount <= 0:
            raise InvalidAmount("Deposit amount must be a positive number")

        fee, net = fee_breakdown(gross_amount, asset.fee_percent, asset.amount_precision)
        return FeeQuote(
            currency=asset.currency,
            network=asset.network,
            gross_amount=gross_amount,
            fee_percent=asset.fee_percent,
            fee_amount=fee,
            net_amount=net,
            min_deposit=asset.min_deposit,
        )

    async def activation_quote(
        self, user_id: str, account_id: int, currency: str, network: str
    ) -> ActivationQuote:
        """Suggest the gross amount that activates an account on a given asset."""
        asset = await self.registry.lookup(currency, network)
        account = await self._get_account(user_id, account_id)

        remaining = account.remaining_to_activate
        required = compute_required_gross(
            remaining,
            asset.fee_percent,
            asset.amount_precision,
            self._units(asset, self.settings.deposit_rounding_buffer),
        )
        if remaining > 0:
            required = max(required, asset.min_deposit.quantize(quantum(asset.amount_precision)))

        return ActivationQuote(
            account_id=account.id,
            currency=asset.currency,
            network=asset.network,
            balance=account.balance,
            min_deposit=account.min_deposit,
            remaining=remaining,
            fee_percent=asset.fee_percent,
            required_gross=required,
            already_funded=remaining == 0,
        )

    async def _get_account(self, user_id: str, account_id: int) -> Account:
        account = await self.repo.get_account(account_id)
        if account is None or account.user_id != user_id:
            if account is not None:
                logger.warning(
                    f"User {user_id} referenced account {account_id} owned by {account.user_id}"
                )
            raise AccountNotFound(account_id)
        return account

    @staticmethod
    def _units(asset: AssetConfig, count: int) -> Decimal:
        """Scale a count of smallest units to the asset's precision."""
        return quantum(asset.amount_precision) * count

    def _check_activation(self, account: Account, asset: AssetConfig, gross: Decimal) -> None:
        result = validate(
            DepositPurpose.ACTIVATION,
            account_balance=account.balance,
            account_minimum=account.min_deposit,
            proposed_gross=gross,
            fee_percent=asset.fee_percent,
            precision=asset.amount_precision,
            tolerance=self._units(asset, self.settings.activation_tolerance),
            rounding_buffer=self._units(asset, self.settings.deposit_rounding_buffer),
        )
        if isinstance(result, Insufficient):
            logger.info(
                f"Activation deposit for account {account.id} short by {result.shortfall} "
                f"{asset.currency} (suggested gross {result.required_gross})"
            )
            raise InsufficientForActivation(result.shortfall, result.required_gross)
        if result.already_funded:
            raise AccountAlreadyFunded(account.id)
