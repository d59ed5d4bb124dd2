"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from depositflow import __version__
from depositflow.config import get_settings
from depositflow.ledger.database import get_db
from depositflow.ledger.repository import DepositRepository

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "depositflow"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration and database info."""
    settings = get_settings()

    database = "ok"
    deposits_by_status: dict[str, int] = {}
    try:
        async with get_db() as session:
            await session.execute(text("SELECT 1"))
            deposits_by_status = await DepositRepository(session).count_deposits_by_status()
    except Exception as e:
        database = f"error: {type(e).__name__}"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "service": "depositflow",
        "version": __version__,
        "database": database,
        "deposits_by_status": deposits_by_status,
        "config": settings.get_safe_dict(),
    }
