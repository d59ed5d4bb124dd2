"""Ledger module for deposits, wallets and ledger instructions."""

from depositflow.ledger.database import get_db, init_db
from depositflow.ledger.models import (
    TERMINAL_STATUSES,
    Account,
    AssetConfig,
    Deposit,
    DepositPurpose,
    DepositStatus,
    DepositTransition,
    InstructionKind,
    InstructionStatus,
    LedgerInstruction,
    WalletAssignment,
)
from depositflow.ledger.repository import DepositRepository

__all__ = [
    # Models
    "Account",
    "AssetConfig",
    "Deposit",
    "DepositTransition",
    "LedgerInstruction",
    "WalletAssignment",
    # Enums
    "DepositPurpose",
    "DepositStatus",
    "InstructionKind",
    "InstructionStatus",
    "TERMINAL_STATUSES",
    # Database
    "get_db",
    "init_db",
    "DepositRepository",
]
