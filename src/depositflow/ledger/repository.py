"""Repository for deposit ledger operations."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from depositflow.ledger.models import (
    TERMINAL_STATUSES,
    Account,
    AssetConfig,
    Deposit,
    DepositPurpose,
    DepositTransition,
    InstructionKind,
    InstructionStatus,
    LedgerInstruction,
    WalletAssignment,
    utcnow,
)

_TERMINAL_VALUES = [status.value for status in TERMINAL_STATUSES]


class DepositRepository:
    """Repository for all deposit-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def dialect(self) -> str:
        return self.session.bind.dialect.name if self.session.bind else "sqlite"

    # Asset operations
    async def get_asset(
        self, currency: str, network: str, active_only: bool = True
    ) -> Optional[AssetConfig]:
        """Get asset config for a (currency, network) pair."""
        stmt = select(AssetConfig).where(
            AssetConfig.currency == currency.upper(),
            AssetConfig.network == network.upper(),
        )
        if active_only:
            stmt = stmt.where(AssetConfig.is_active.is_(True))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_asset_by_id(self, asset_id: int) -> Optional[AssetConfig]:
        """Get asset config by ID."""
        stmt = select(AssetConfig).where(AssetConfig.id == asset_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_assets(self, currency: Optional[str] = None) -> list[AssetConfig]:
        """Get all active asset configs, optionally for one currency."""
        stmt = select(AssetConfig).where(AssetConfig.is_active.is_(True))
        if currency:
            stmt = stmt.where(AssetConfig.currency == currency.upper())
        stmt = stmt.order_by(AssetConfig.currency, AssetConfig.network)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert_asset(
        self,
        currency: str,
        network: str,
        min_deposit: Decimal,
        fee_percent: Decimal,
        required_confirmations: int,
        amount_precision: int = 2,
        display_name: Optional[str] = None,
        is_active: bool = True,
    ) -> AssetConfig:
        """Create or update an asset config (provisioning only)."""
        if not Decimal("0") <= fee_percent < Decimal("100"):
            raise ValueError(f"Fee percent must be in [0, 100): {fee_percent}")
        if required_confirmations < 1:
            raise ValueError("At least one confirmation is required")

        asset = await self.get_asset(currency, network, active_only=False)
        if asset is None:
            asset = AssetConfig(currency=currency.upper(), network=network.upper())
            self.session.add(asset)

        asset.min_deposit = min_deposit
        asset.fee_percent = fee_percent
        asset.required_confirmations = required_confirmations
        asset.amount_precision = amount_precision
        asset.display_name = display_name
        asset.is_active = is_active
        await self.session.flush()
        return asset

    # Wallet assignment operations
    async def get_personal_wallets(self, asset_id: int, user_id: str) -> list[WalletAssignment]:
        """Get active wallets bound to a user, oldest first."""
        stmt = (
            select(WalletAssignment)
            .where(
                WalletAssignment.asset_id == asset_id,
                WalletAssignment.user_id == user_id,
                WalletAssignment.is_active.is_(True),
            )
            .order_by(WalletAssignment.created_at, WalletAssignment.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_pool_wallets(self, asset_id: int) -> list[WalletAssignment]:
        """Get active shared-pool wallets for an asset."""
        stmt = (
            select(WalletAssignment)
            .where(
                WalletAssignment.asset_id == asset_id,
                WalletAssignment.user_id.is_(None),
                WalletAssignment.is_active.is_(True),
            )
            .order_by(WalletAssignment.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_wallet(self, wallet_id: int) -> Optional[WalletAssignment]:
        """Get a wallet assignment by ID."""
        stmt = select(WalletAssignment).where(WalletAssignment.id == wallet_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_wallet(
        self,
        asset_id: int,
        address: str,
        user_id: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> WalletAssignment:
        """Register a provisioned wallet (provisioning only)."""
        wallet = WalletAssignment(asset_id=asset_id, address=address, user_id=user_id, memo=memo)
        self.session.add(wallet)
        await self.session.flush()
        return wallet

    # Account operations
    async def get_account(self, account_id: int) -> Optional[Account]:
        """Get an account by ID."""
        stmt = select(Account).where(Account.id == account_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_account(
        self,
        user_id: str,
        account_number: str,
        balance: Decimal = Decimal("0"),
        min_deposit: Decimal = Decimal("0"),
        status: str = "active",
    ) -> Account:
        """Mirror an account from the core ledger."""
        account = Account(
            user_id=user_id,
            account_number=account_number,
            balance=balance,
            min_deposit=min_deposit,
            status=status,
        )
        self.session.add(account)
        await self.session.flush()
        return account

    # Deposit operations
    async def get_deposit(self, deposit_id: int, for_update: bool = False) -> Optional[Deposit]:
        """Get a deposit by ID.

        With ``for_update`` the row is locked on PostgreSQL (SELECT FOR UPDATE).
        SQLite serializes writers itself.
        """
        stmt = select(Deposit).where(Deposit.id == deposit_id)
        if for_update and self.dialect == "postgresql":
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_open_deposit(self, account_id: int, purpose: DepositPurpose) -> Optional[Deposit]:
        """Find the non-terminal deposit for an (account, purpose), if any."""
        stmt = select(Deposit).where(
            Deposit.account_id == account_id,
            Deposit.purpose == purpose.value,
            Deposit.status.notin_(_TERMINAL_VALUES),
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_open_deposits_by_destination(
        self,
        address: str,
        asset_id: int,
        tx_reference: Optional[str] = None,
    ) -> list[Deposit]:
        """Find open deposits sent to an address, for watchers that track addresses."""
        stmt = select(Deposit).where(
            Deposit.destination_address == address,
            Deposit.asset_id == asset_id,
            Deposit.status.notin_(_TERMINAL_VALUES),
        )
        if tx_reference:
            stmt = stmt.where(Deposit.tx_reference == tx_reference)
        result = await self.session.execute(stmt.order_by(Deposit.id))
        return list(result.scalars().all())

    async def add_deposit(self, deposit: Deposit) -> Deposit:
        """Insert a deposit. IntegrityError propagates to the caller."""
        self.session.add(deposit)
        await self.session.flush()
        return deposit

    async def get_user_deposits(
        self,
        user_id: str,
        status: Optional[str] = None,
        currency: Optional[str] = None,
        purpose: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        ascending: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Deposit]:
        """Get deposit history for a user."""
        stmt = select(Deposit).where(Deposit.user_id == user_id)
        if status:
            stmt = stmt.where(Deposit.status == status)
        if purpose:
            stmt = stmt.where(Deposit.purpose == purpose)
        if currency:
            stmt = stmt.join(AssetConfig, Deposit.asset_id == AssetConfig.id).where(
                AssetConfig.currency == currency.upper()
            )
        if date_from:
            stmt = stmt.where(Deposit.created_at >= date_from)
        if date_to:
            stmt = stmt.where(Deposit.created_at <= date_to)

        order = Deposit.created_at.asc() if ascending else Deposit.created_at.desc()
        stmt = stmt.order_by(order, Deposit.id).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_stale_deposits(self, cutoff: datetime, limit: int = 100) -> list[Deposit]:
        """Get open deposits created before the cutoff, oldest first."""
        stmt = (
            select(Deposit)
            .where(
                Deposit.status.notin_(_TERMINAL_VALUES),
                Deposit.created_at < cutoff,
            )
            .order_by(Deposit.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_deposits_by_status(self) -> dict[str, int]:
        """Count deposits per status (admin)."""
        stmt = select(Deposit.status, func.count(Deposit.id)).group_by(Deposit.status)
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    # Transition audit
    async def add_transition(
        self,
        deposit: Deposit,
        from_status: Optional[str],
        to_status: str,
        reason: Optional[str] = None,
        actor: str = "system",
    ) -> DepositTransition:
        """Record a status change."""
        transition = DepositTransition(
            deposit_id=deposit.id,
            from_status=from_status,
            to_status=to_status,
            confirmations=deposit.confirmations,
            reason=reason,
            actor=actor,
        )
        self.session.add(transition)
        await self.session.flush()
        return transition

    async def get_transitions(self, deposit_id: int) -> list[DepositTransition]:
        """Get the status history of a deposit."""
        stmt = (
            select(DepositTransition)
            .where(DepositTransition.deposit_id == deposit_id)
            .order_by(DepositTransition.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Ledger instruction outbox
    async def get_instruction_by_id(self, instruction_id: int) -> Optional[LedgerInstruction]:
        """Get a ledger instruction by ID."""
        stmt = select(LedgerInstruction).where(LedgerInstruction.id == instruction_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_instruction(
        self, deposit_id: int, kind: InstructionKind
    ) -> Optional[LedgerInstruction]:
        """Get the instruction of a kind for a deposit."""
        stmt = select(LedgerInstruction).where(
            LedgerInstruction.deposit_id == deposit_id,
            LedgerInstruction.kind == kind.value,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_instruction(
        self, deposit: Deposit, kind: InstructionKind, amount: Decimal
    ) -> LedgerInstruction:
        """Queue a credit/debit instruction for the core ledger."""
        instruction = LedgerInstruction(
            deposit_id=deposit.id,
            account_id=deposit.account_id,
            kind=kind.value,
            amount=amount,
            currency=deposit.asset.currency,
        )
        self.session.add(instruction)
        await self.session.flush()
        return instruction

    async def get_instructions(
        self,
        status: Optional[InstructionStatus] = None,
        deposit_id: Optional[int] = None,
        limit: int = 100,
    ) -> list[LedgerInstruction]:
        """Get ledger instructions in creation order."""
        stmt = select(LedgerInstruction)
        if status is not None:
            stmt = stmt.where(LedgerInstruction.status == status.value)
        if deposit_id is not None:
            stmt = stmt.where(LedgerInstruction.deposit_id == deposit_id)
        stmt = stmt.order_by(LedgerInstruction.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_instruction_dispatched(self, instruction: LedgerInstruction) -> LedgerInstruction:
        """Mark an instruction as accepted by the core ledger."""
        instruction.status = InstructionStatus.DISPATCHED.value
        instruction.attempts += 1
        instruction.last_error = None
        instruction.dispatched_at = utcnow()
        await self.session.flush()
        return instruction

    async def record_instruction_failure(
        self, instruction: LedgerInstruction, error: str
    ) -> LedgerInstruction:
        """Record a failed delivery attempt."""
        instruction.attempts += 1
        instruction.last_error = error[:1000]
        await self.session.flush()
        return instruction
