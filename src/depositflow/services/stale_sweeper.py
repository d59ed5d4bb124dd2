"""Stale deposit sweeper.

Reports deposits that have stayed open longer than ``stale_deposit_hours``
so operators can chase them. It never changes a deposit; resolution is a
review decision.

Usage:
    python -m depositflow.services.stale_sweeper --hours 72 --once
"""

import argparse
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from depositflow.config import get_settings
from depositflow.ledger.database import init_db
from depositflow.services.deposit_service import DepositService

logger = logging.getLogger(__name__)


@dataclass
class StaleDeposit:
    deposit_id: int
    user_id: str
    account_id: int
    status: str
    purpose: str
    currency: str
    network: str
    gross_amount: Decimal
    confirmations: int
    required_confirmations: int
    created_at: datetime


class StaleDepositSweeper:
    """Periodically report open deposits past their expected resolution."""

    def __init__(
        self,
        service: Optional[DepositService] = None,
        hours: Optional[int] = None,
        interval: int = 3600,
    ):
        self.service = service or DepositService()
        self.hours = hours if hours is not None else get_settings().stale_deposit_hours
        self.interval = interval

    async def sweep_once(self) -> list[StaleDeposit]:
        deposits = await self.service.stale_deposits(hours=self.hours)
        stale = [
            StaleDeposit(
                deposit_id=d.id,
                user_id=d.user_id,
                account_id=d.account_id,
                status=d.status,
                purpose=d.purpose,
                currency=d.asset.currency,
                network=d.asset.network,
                gross_amount=d.gross_amount,
                confirmations=d.confirmations,
                required_confirmations=d.required_confirmations,
                created_at=d.created_at,
            )
            for d in deposits
        ]

        for item in stale:
            logger.warning(
                f"Stale deposit {item.deposit_id}: {item.status} since {item.created_at} "
                f"({item.gross_amount} {item.currency}/{item.network}, "
                f"{item.confirmations}/{item.required_confirmations} confirmations)"
            )
        if not stale:
            logger.debug(f"No deposits open longer than {self.hours}h")
        return stale

    async def run(self) -> None:
        logger.info(f"Starting stale deposit sweeper (threshold: {self.hours}h)")
        while True:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Stale sweeper error: {e}")

            await asyncio.sleep(self.interval)


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Report stale open deposits")
    parser.add_argument("--hours", type=int, default=None, help="Age threshold in hours")
    parser.add_argument(
        "--interval", type=int, default=3600, help="Seconds between sweeps (default: 3600)"
    )
    parser.add_argument("--once", action="store_true", help="Run once and exit")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    await init_db()
    sweeper = StaleDepositSweeper(hours=args.hours, interval=args.interval)

    if args.once:
        stale = await sweeper.sweep_once()
        print(f"Found {len(stale)} stale deposits")
    else:
        await sweeper.run()


if __name__ == "__main__":
    asyncio.run(main())
