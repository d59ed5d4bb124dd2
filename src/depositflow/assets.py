"""Default asset catalog used to seed ``asset_configs``.

Confirmation thresholds and minimums follow the networks offered on the
deposit form. Fees default to zero; set them per environment with
``scripts/seed_assets.py --fee``.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class AssetSeed:
    currency: str
    network: str
    display_name: str
    required_confirmations: int
    min_deposit: Decimal
    amount_precision: int
    fee_percent: Decimal = Decimal("0")


DEFAULT_ASSETS: list[AssetSeed] = [
    # USDT
    AssetSeed("USDT", "BEP20", "BSC (BEP20)", 60, Decimal("0.005"), 6),
    AssetSeed("USDT", "TRC20", "TRON (TRC20)", 20, Decimal("0.005"), 6),
    AssetSeed("USDT", "ERC20", "Ethereum (ERC20)", 6, Decimal("0.005"), 6),
    AssetSeed("USDT", "SOL", "Solana (SOL)", 200, Decimal("0.005"), 6),
    AssetSeed("USDT", "TON", "TON (The Open Network)", 1, Decimal("0.005"), 6),
    # ETH
    AssetSeed("ETH", "ERC20", "Ethereum (ERC20)", 6, Decimal("0.00005"), 8),
    AssetSeed("ETH", "BEP20", "BSC (BEP20)", 60, Decimal("0.00005"), 8),
    AssetSeed("ETH", "ARBITRUM", "Arbitrum One", 120, Decimal("0.000001"), 8),
    AssetSeed("ETH", "BASE", "Base Mainnet", 30, Decimal("0.000001"), 8),
    # BNB
    AssetSeed("BNB", "BEP20", "BSC (BEP20)", 60, Decimal("0.0005"), 8),
    # BTC
    AssetSeed("BTC", "BITCOIN", "Bitcoin Mainnet", 1, Decimal("0.0001"), 8),
    AssetSeed("BTC", "BEP20", "BSC (BEP20)", 60, Decimal("0.0001"), 8),
]
