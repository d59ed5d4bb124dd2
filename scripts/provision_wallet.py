#!/usr/bin/env python3
"""Register a custody wallet address for deposits.

Addresses are created by the custody system; this only records them.

Usage:
    python scripts/provision_wallet.py USDT TRC20 <address> [--user USER_ID] [--memo MEMO]

Without --user the address joins the shared activation pool.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from depositflow.ledger.database import get_db, init_db
from depositflow.ledger.repository import DepositRepository

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def provision(currency: str, network: str, address: str, user_id: str = None, memo: str = None) -> bool:
    await init_db()

    async with get_db() as session:
        repo = DepositRepository(session)
        asset = await repo.get_asset(currency, network)
        if asset is None:
            logger.error(f"No active asset config for {currency.upper()}/{network.upper()}")
            return False

        wallet = await repo.create_wallet(asset.id, address, user_id=user_id, memo=memo)
        owner = f"user {user_id}" if user_id else "activation pool"
        logger.info(f"Registered wallet {wallet.id} for {asset.pair} ({owner}): {address}")
        return True


def main():
    parser = argparse.ArgumentParser(description="Register a deposit wallet")
    parser.add_argument("currency", help="Currency symbol, e.g. USDT")
    parser.add_argument("network", help="Network, e.g. TRC20")
    parser.add_argument("address", help="Wallet address")
    parser.add_argument("--user", type=str, default=None, help="Bind to a user (default: pool)")
    parser.add_argument("--memo", type=str, default=None, help="Memo/tag for chains that need one")
    args = parser.parse_args()

    ok = asyncio.run(provision(args.currency, args.network, args.address, args.user, args.memo))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
