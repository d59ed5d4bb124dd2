"""Deposit service: transaction, locking and dispatch around the engine.

Every entry point opens its own session, commits, and only then hands the
buffered lifecycle events to the notification dispatcher.
"""

import logging
import random
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depositflow.config import Settings, get_settings
from depositflow.deposits.errors import (
    ConcurrentDepositUpdate,
    DepositNotFound,
    IllegalTransition,
    UnsupportedAsset,
)
from depositflow.deposits.lifecycle import (
    ConfirmationOutcome,
    ConfirmationResult,
    LifecycleManager,
    TransitionResult,
)
from depositflow.deposits.registry import AssetRegistry
from depositflow.deposits.submission import (
    ActivationQuote,
    FeeQuote,
    SubmissionRequest,
    SubmissionResult,
    SubmissionService,
)
from depositflow.deposits.wallets import ResolveMode, WalletResolver
from depositflow.ledger.database import get_db
from depositflow.ledger.models import (
    AssetConfig,
    Deposit,
    DepositPurpose,
    DepositTransition,
    InstructionStatus,
    LedgerInstruction,
    utcnow,
)
from depositflow.ledger.repository import DepositRepository
from depositflow.notifications.dispatcher import NotificationDispatcher, dispatch_events
from depositflow.utils.locks import DepositLock, LockTimeoutError, account_key, keyed_lock

logger = logging.getLogger(__name__)


class ReviewDecision(str, Enum):
    """Manual review outcomes."""

    APPROVE = "approve"
    REJECT = "reject"
    HOLD = "hold"
    RELEASE = "release"


@dataclass
class ConfirmationUpdate:
    """One watcher report, addressed by deposit id or by destination."""

    confirmations: int
    deposit_id: Optional[int] = None
    address: Optional[str] = None
    currency: Optional[str] = None
    network: Optional[str] = None
    tx_reference: Optional[str] = None


@dataclass
class DepositAddress:
    wallet_assignment_id: int
    address: str
    memo: Optional[str]
    currency: str
    network: str
    mode: str
    required_confirmations: int
    min_deposit: Decimal
    fee_percent: Decimal


class DepositService:
    """Entry points used by the API, the watcher webhook and workers."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.rng = rng

    # ------------------------------------------------------------------
    # Submission and quotes
    # ------------------------------------------------------------------

    async def submit(self, request: SubmissionRequest) -> SubmissionResult:
        """Submit a deposit and dispatch ``deposit.submitted`` after commit."""
        purpose = DepositPurpose(request.purpose)
        async with keyed_lock(account_key(request.account_id, purpose.value), operation="submit"):
            async with get_db(self.session_factory) as session:
                service = SubmissionService(
                    DepositRepository(session), settings=self.settings, rng=self.rng
                )
                result = await service.submit(request)
            events = list(service.events)

        await dispatch_events(events, self.dispatcher)
        return result

    async def quote(self, currency: str, network: str, gross_amount: Decimal) -> FeeQuote:
        async with get_db(self.session_factory) as session:
            service = SubmissionService(DepositRepository(session), settings=self.settings)
            return await service.quote(currency, network, gross_amount)

    async def activation_quote(
        self, user_id: str, account_id: int, currency: str, network: str
    ) -> ActivationQuote:
        async with get_db(self.session_factory) as session:
            service = SubmissionService(DepositRepository(session), settings=self.settings)
            return await service.activation_quote(user_id, account_id, currency, network)

    async def list_assets(self, currency: Optional[str] = None) -> list[AssetConfig]:
        """Active (currency, network) pairs offered on the deposit form."""
        async with get_db(self.session_factory) as session:
            repo = DepositRepository(session)
            if currency:
                return await AssetRegistry(repo).networks_for(currency)
            return await repo.get_active_assets()

    async def deposit_address(
        self, user_id: str, currency: str, network: str, mode: ResolveMode
    ) -> DepositAddress:
        """Resolve the wallet to show a depositor."""
        async with get_db(self.session_factory) as session:
            repo = DepositRepository(session)
            asset = await AssetRegistry(repo).lookup(currency, network)
            wallet = await WalletResolver(repo, rng=self.rng).resolve(asset, user_id, mode)
            return DepositAddress(
                wallet_assignment_id=wallet.id,
                address=wallet.address,
                memo=wallet.memo,
                currency=asset.currency,
                network=asset.network,
                mode=ResolveMode(mode).value,
                required_confirmations=asset.required_confirmations,
                min_deposit=asset.min_deposit,
                fee_percent=asset.fee_percent,
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_deposit(self, deposit_id: int) -> tuple[Deposit, list[DepositTransition]]:
        async with get_db(self.session_factory) as session:
            repo = DepositRepository(session)
            deposit = await repo.get_deposit(deposit_id)
            if deposit is None:
                raise DepositNotFound(deposit_id)
            return deposit, await repo.get_transitions(deposit_id)

    async def list_deposits(
        self,
        user_id: str,
        status: Optional[str] = None,
        currency: Optional[str] = None,
        purpose: Optional[str] = None,
        ascending: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Deposit]:
        async with get_db(self.session_factory) as session:
            return await DepositRepository(session).get_user_deposits(
                user_id,
                status=status,
                currency=currency,
                purpose=purpose,
                ascending=ascending,
                limit=limit,
                offset=offset,
            )

    async def stale_deposits(self, hours: Optional[int] = None, limit: int = 100) -> list[Deposit]:
        """Open deposits older than ``hours`` (defaults to settings)."""
        hours = hours if hours is not None else self.settings.stale_deposit_hours
        cutoff = utcnow() - timedelta(hours=hours)
        async with get_db(self.session_factory) as session:
            return await DepositRepository(session).get_stale_deposits(cutoff, limit=limit)

    async def ledger_instructions(
        self,
        status: Optional[InstructionStatus] = None,
        deposit_id: Optional[int] = None,
        limit: int = 100,
    ) -> list[LedgerInstruction]:
        async with get_db(self.session_factory) as session:
            return await DepositRepository(session).get_instructions(
                status=status, deposit_id=deposit_id, limit=limit
            )

    # ------------------------------------------------------------------
    # Watcher
    # ------------------------------------------------------------------

    async def record_confirmations(
        self, updates: list[ConfirmationUpdate]
    ) -> list[ConfirmationResult]:
        """Apply a watcher batch. Each update commits on its own; one bad
        update never fails the others."""
        results = []
        for update in updates:
            try:
                results.append(await self.record_confirmation(update))
            except Exception as e:
                logger.error(
                    f"Confirmation update failed (deposit {update.deposit_id}, "
                    f"address {update.address}, {update.confirmations} confirmations): {e}"
                )
                results.append(
                    ConfirmationResult(
                        update.deposit_id,
                        ConfirmationOutcome.ERROR,
                        message="update could not be applied, retry later",
                    )
                )
        return results

    async def record_confirmation(self, update: ConfirmationUpdate) -> ConfirmationResult:
        deposit_id = update.deposit_id
        if deposit_id is None:
            target = await self._find_by_destination(update)
            if isinstance(target, ConfirmationResult):
                return target
            deposit_id = target

        try:
            return await self._mutate(
                deposit_id,
                "confirmation",
                lambda manager: manager.record_confirmation(
                    deposit_id, update.confirmations, actor="watcher"
                ),
            )
        except DepositNotFound:
            logger.warning(f"Confirmation update for unknown deposit {deposit_id}")
            return ConfirmationResult(deposit_id, ConfirmationOutcome.NOT_FOUND)
        except IllegalTransition as e:
            logger.warning(f"Confirmation update rejected: {e}")
            return ConfirmationResult(
                deposit_id, ConfirmationOutcome.CONFLICT, status=e.status, message=str(e)
            )
        except (ConcurrentDepositUpdate, LockTimeoutError) as e:
            logger.warning(f"Confirmation update for deposit {deposit_id} lost a race: {e}")
            return ConfirmationResult(deposit_id, ConfirmationOutcome.CONFLICT, message=str(e))

    async def _find_by_destination(self, update: ConfirmationUpdate):
        """Map an address-based report to exactly one open deposit id."""
        if not (update.address and update.currency and update.network):
            return ConfirmationResult(
                None, ConfirmationOutcome.NOT_FOUND, message="deposit_id or address/currency/network required"
            )

        async with get_db(self.session_factory) as session:
            repo = DepositRepository(session)
            try:
                asset = await AssetRegistry(repo).lookup(update.currency, update.network)
            except UnsupportedAsset:
                return ConfirmationResult(
                    None, ConfirmationOutcome.NOT_FOUND, message="unsupported asset"
                )
            matches = await repo.find_open_deposits_by_destination(
                update.address, asset.id, update.tx_reference
            )

        if not matches:
            logger.warning(
                f"No open deposit at {update.address} ({update.currency}/{update.network})"
            )
            return ConfirmationResult(None, ConfirmationOutcome.NOT_FOUND)
        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} open deposits at {update.address}, "
                f"tx reference needed to disambiguate"
            )
            return ConfirmationResult(
                None,
                ConfirmationOutcome.AMBIGUOUS,
                message=f"{len(matches)} open deposits share this destination",
            )
        return matches[0].id

    # ------------------------------------------------------------------
    # Review and resolution
    # ------------------------------------------------------------------

    async def review(
        self,
        deposit_id: int,
        decision: ReviewDecision,
        reason: str,
        actor: str = "reviewer",
    ) -> TransitionResult:
        """Apply a manual review decision."""
        decision = ReviewDecision(decision)
        operations = {
            ReviewDecision.APPROVE: lambda m: m.approve(deposit_id, reason, actor=actor),
            ReviewDecision.REJECT: lambda m: m.fail(deposit_id, reason, actor=actor),
            ReviewDecision.HOLD: lambda m: m.hold(deposit_id, reason, actor=actor),
            ReviewDecision.RELEASE: lambda m: m.release(deposit_id, reason, actor=actor),
        }
        logger.info(f"Review {decision.value} on deposit {deposit_id} by {actor}: {reason}")
        return await self._mutate(deposit_id, f"review:{decision.value}", operations[decision])

    async def complete(self, deposit_id: int, actor: str = "system") -> TransitionResult:
        return await self._mutate(
            deposit_id, "complete", lambda m: m.complete(deposit_id, actor=actor)
        )

    async def fail(self, deposit_id: int, reason: str, actor: str = "system") -> TransitionResult:
        return await self._mutate(
            deposit_id, "fail", lambda m: m.fail(deposit_id, reason, actor=actor)
        )

    async def reverse(self, deposit_id: int, reason: str, actor: str = "reviewer") -> TransitionResult:
        return await self._mutate(
            deposit_id, "reverse", lambda m: m.reverse(deposit_id, reason, actor=actor)
        )

    async def _mutate(self, deposit_id: int, operation: str, action):
        """Run one lifecycle action under the deposit lock, commit, then dispatch."""
        async with DepositLock(deposit_id, operation=operation):
            async with get_db(self.session_factory) as session:
                manager = LifecycleManager(
                    DepositRepository(session),
                    auto_complete=self.settings.auto_complete_confirmed,
                )
                result = await action(manager)
            events = list(manager.events)

        await dispatch_events(events, self.dispatcher)
        return result
