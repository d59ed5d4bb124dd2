"""SQLAlchemy models for the deposit ledger."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from depositflow.ledger.types import Money


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class DepositStatus(str, Enum):
    """Lifecycle status of a deposit."""

    PENDING = "pending"                                # Submitted, nothing seen on chain yet
    AWAITING_CONFIRMATIONS = "awaiting_confirmations"  # Seen, below threshold
    CONFIRMED = "confirmed"                            # Threshold reached, not yet credited
    COMPLETED = "completed"                            # Credited to the account
    FAILED = "failed"                                  # Rejected by review or watcher
    REVERSED = "reversed"                              # Credit taken back after completion
    ON_HOLD = "on_hold"                                # Parked for manual review


TERMINAL_STATUSES = (DepositStatus.COMPLETED, DepositStatus.FAILED, DepositStatus.REVERSED)

# Partial-index predicate: one open deposit per (account, purpose)
OPEN_DEPOSIT_PREDICATE = "status NOT IN ('completed', 'failed', 'reversed')"


class DepositPurpose(str, Enum):
    """Why the deposit was made."""

    GENERAL = "general"
    ACTIVATION = "activation"


class InstructionKind(str, Enum):
    """Ledger instruction direction."""

    CREDIT = "credit"
    DEBIT = "debit"


class InstructionStatus(str, Enum):
    """Outbox delivery status."""

    PENDING = "pending"
    DISPATCHED = "dispatched"


class AssetConfig(Base):
    """Supported (currency, network) pair and its deposit rules."""

    __tablename__ = "asset_configs"
    __table_args__ = (
        Index("ix_asset_configs_currency_network", "currency", "network", unique=True),
        CheckConstraint("required_confirmations >= 1", name="ck_asset_configs_confirmations"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    currency: Mapped[str] = mapped_column(String(20), nullable=False)  # e.g., BTC, USDT
    network: Mapped[str] = mapped_column(String(40), nullable=False)  # e.g., BITCOIN, TRC20
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    min_deposit: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    fee_percent: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    required_confirmations: Mapped[int] = mapped_column(nullable=False, default=1)
    amount_precision: Mapped[int] = mapped_column(nullable=False, default=2)
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    wallets: Mapped[list["WalletAssignment"]] = relationship(back_populates="asset")

    @property
    def pair(self) -> str:
        return f"{self.currency}/{self.network}"


class WalletAssignment(Base):
    """Custody destination shown to depositors.

    ``user_id`` NULL means the address belongs to the shared activation pool.
    """

    __tablename__ = "wallet_assignments"
    __table_args__ = (Index("ix_wallet_assignments_asset_user", "asset_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("asset_configs.id"), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    memo: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # Tag for XRP/TON style chains
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    asset: Mapped["AssetConfig"] = relationship(back_populates="wallets")

    @property
    def is_shared(self) -> bool:
        return self.user_id is None


class Account(Base):
    """Mirror of a customer account owned by the core banking ledger.

    The engine only reads balance and the activation threshold.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_number: Mapped[str] = mapped_column(String(34), unique=True, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    min_deposit: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(30), default="active")  # pending_funding, active, ...
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def remaining_to_activate(self) -> Decimal:
        return max(Decimal("0"), self.min_deposit - self.balance)


class Deposit(Base):
    """A crypto deposit tracked from submission to a terminal status."""

    __tablename__ = "deposits"
    __table_args__ = (
        Index(
            "uq_deposits_open_account_purpose",
            "account_id",
            "purpose",
            unique=True,
            sqlite_where=text(OPEN_DEPOSIT_PREDICATE),
            postgresql_where=text(OPEN_DEPOSIT_PREDICATE),
        ),
        Index("ix_deposits_user_created", "user_id", "created_at"),
        CheckConstraint(
            "tx_reference IS NOT NULL OR proof_pointer IS NOT NULL",
            name="ck_deposits_evidence",
        ),
        CheckConstraint(
            "status IN ('pending', 'awaiting_confirmations', 'confirmed', 'completed', "
            "'failed', 'reversed', 'on_hold')",
            name="ck_deposits_status",
        ),
        CheckConstraint("purpose IN ('general', 'activation')", name="ck_deposits_purpose"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    asset_id: Mapped[int] = mapped_column(ForeignKey("asset_configs.id"), nullable=False)
    wallet_assignment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("wallet_assignments.id"), nullable=True
    )
    destination_address: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    destination_memo: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    gross_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)  # gross - fee
    fee_percent: Mapped[Decimal] = mapped_column(Money, nullable=False)  # Snapshot at submission

    required_confirmations: Mapped[int] = mapped_column(nullable=False)
    confirmations: Mapped[int] = mapped_column(nullable=False, default=0)

    tx_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    proof_pointer: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    status: Mapped[DepositStatus] = mapped_column(
        String(30), default=DepositStatus.PENDING, nullable=False
    )
    purpose: Mapped[DepositPurpose] = mapped_column(
        String(20), default=DepositPurpose.GENERAL, nullable=False
    )
    status_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Compare-and-swap on every UPDATE
    __mapper_args__ = {"version_id_col": version}

    asset: Mapped["AssetConfig"] = relationship(lazy="selectin")
    transitions: Mapped[list["DepositTransition"]] = relationship(
        back_populates="deposit", order_by="DepositTransition.id"
    )

    @property
    def state(self) -> DepositStatus:
        """Status as an enum member (the column holds the raw string)."""
        return DepositStatus(self.status)

    @property
    def kind(self) -> DepositPurpose:
        return DepositPurpose(self.purpose)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATUSES


class DepositTransition(Base):
    """Audit trail of deposit status changes."""

    __tablename__ = "deposit_transitions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    deposit_id: Mapped[int] = mapped_column(ForeignKey("deposits.id"), nullable=False, index=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    confirmations: Mapped[int] = mapped_column(default=0)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor: Mapped[str] = mapped_column(String(50), default="system")  # system, watcher, reviewer
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    deposit: Mapped["Deposit"] = relationship(back_populates="transitions")


class LedgerInstruction(Base):
    """Credit/debit instruction for the core ledger (transactional outbox).

    One instruction of each kind per deposit, enforced by the unique index.
    """

    __tablename__ = "ledger_instructions"
    __table_args__ = (
        Index("uq_ledger_instructions_deposit_kind", "deposit_id", "kind", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    deposit_id: Mapped[int] = mapped_column(ForeignKey("deposits.id"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    kind: Mapped[InstructionKind] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[InstructionStatus] = mapped_column(
        String(20), default=InstructionStatus.PENDING, nullable=False
    )
    attempts: Mapped[int] = mapped_column(default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
