"""Asset registry: supported (currency, network) pairs and their deposit rules."""

import logging

from depositflow.deposits.errors import UnsupportedAsset
from depositflow.ledger.models import AssetConfig
from depositflow.ledger.repository import DepositRepository

logger = logging.getLogger(__name__)


class AssetRegistry:
    """Read-only lookup of active asset configs."""

    def __init__(self, repo: DepositRepository):
        self.repo = repo

    async def lookup(self, currency: str, network: str) -> AssetConfig:
        """Return the active config for a pair.

        Raises:
            UnsupportedAsset: no active config. Callers must stop; no default
                fee or confirmation count is ever substituted.
        """
        asset = await self.repo.get_asset(currency, network)
        if asset is None:
            logger.warning(f"Asset lookup miss: {currency}/{network}")
            raise UnsupportedAsset(currency.upper(), network.upper())
        return asset

    async def networks_for(self, currency: str) -> list[AssetConfig]:
        """Active networks offered for a currency."""
        return await self.repo.get_active_assets(currency)
