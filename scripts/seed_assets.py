#!/usr/bin/env python3
"""Seed the asset registry with the default network catalog.

Usage:
    python scripts/seed_assets.py [--fee USDT:TRC20=1.5] [--only USDT] [--dry-run]

Options:
    --fee      Fee percent for a pair, repeatable (default: 0 for every pair)
    --only     Only seed one currency
    --dry-run  Show what would be written without changing the database
"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from depositflow.assets import DEFAULT_ASSETS
from depositflow.ledger.database import get_db, init_db
from depositflow.ledger.repository import DepositRepository

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_fees(values: list[str]) -> dict[tuple[str, str], Decimal]:
    """Parse ``CURRENCY:NETWORK=PERCENT`` options."""
    fees = {}
    for value in values:
        try:
            pair, percent = value.split("=", 1)
            currency, network = pair.split(":", 1)
            fees[(currency.upper(), network.upper())] = Decimal(percent)
        except (ValueError, InvalidOperation):
            raise SystemExit(f"Invalid --fee value: {value} (expected CURRENCY:NETWORK=PERCENT)")
    return fees


async def seed(fees: dict[tuple[str, str], Decimal], only: str = None, dry_run: bool = False) -> int:
    await init_db()

    seeds = [a for a in DEFAULT_ASSETS if not only or a.currency == only.upper()]
    async with get_db() as session:
        repo = DepositRepository(session)
        for item in seeds:
            fee = fees.get((item.currency, item.network), item.fee_percent)
            if dry_run:
                logger.info(
                    f"[dry-run] {item.currency}/{item.network}: {item.required_confirmations} conf, "
                    f"min {item.min_deposit}, fee {fee}%"
                )
                continue
            await repo.upsert_asset(
                currency=item.currency,
                network=item.network,
                min_deposit=item.min_deposit,
                fee_percent=fee,
                required_confirmations=item.required_confirmations,
                amount_precision=item.amount_precision,
                display_name=item.display_name,
            )
            logger.info(f"Seeded {item.currency}/{item.network} (fee {fee}%)")
        if dry_run:
            await session.rollback()

    return len(seeds)


def main():
    parser = argparse.ArgumentParser(description="Seed asset configs")
    parser.add_argument("--fee", action="append", default=[], help="CURRENCY:NETWORK=PERCENT")
    parser.add_argument("--only", type=str, help="Only seed one currency")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be done")
    args = parser.parse_args()

    count = asyncio.run(seed(parse_fees(args.fee), only=args.only, dry_run=args.dry_run))
    print(f"Processed {count} asset configs")


if __name__ == "__main__":
    main()
