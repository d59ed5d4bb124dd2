"""Shared FastAPI dependencies."""

from depositflow.services.deposit_service import DepositService


def get_deposit_service() -> DepositService:
    """Deposit service bound to the configured database and dispatcher."""
    return DepositService()
