"""Wallet assignment resolver.

Picks the custody destination shown to a depositor, either the user's own
wallet or one drawn at random from the shared activation pool.
"""

import logging
import random
from enum import Enum
from typing import Optional

from depositflow.deposits.errors import NoWalletAvailable
from depositflow.ledger.models import AssetConfig, DepositPurpose, WalletAssignment
from depositflow.ledger.repository import DepositRepository

logger = logging.getLogger(__name__)


class ResolveMode(str, Enum):
    """Which wallet pool to draw from."""

    PERSONAL = "personal"
    ACTIVATION = "activation"

    @classmethod
    def for_purpose(cls, purpose: DepositPurpose) -> "ResolveMode":
        if DepositPurpose(purpose) == DepositPurpose.ACTIVATION:
            return cls.ACTIVATION
        return cls.PERSONAL


class WalletResolver:
    """Resolve a wallet assignment for an asset and user."""

    def __init__(self, repo: DepositRepository, rng: Optional[random.Random] = None):
        self.repo = repo
        self._rng = rng or random.SystemRandom()

    async def resolve(
        self, asset: AssetConfig, user_id: str, mode: ResolveMode
    ) -> WalletAssignment:
        """Return the wallet to display.

        Personal mode is deterministic (oldest assignment wins) so repeated
        views show the same address. Activation mode spreads load over the
        shared pool.

        Raises:
            NoWalletAvailable: nothing provisioned for the pair/mode.
        """
        mode = ResolveMode(mode)
        if mode == ResolveMode.PERSONAL:
            wallets = await self.repo.get_personal_wallets(asset.id, user_id)
            if wallets:
                if len(wallets) > 1:
                    logger.debug(
                        f"User {user_id} has {len(wallets)} wallets for {asset.pair}, using oldest"
                    )
                return wallets[0]
        else:
            wallets = await self.repo.get_pool_wallets(asset.id)
            if wallets:
                return self._rng.choice(wallets)

        logger.error(f"No {mode.value} wallet for {asset.pair} (user {user_id})")
        raise NoWalletAvailable(asset.currency, asset.network, mode.value, user_id)

    async def verify(
        self, wallet_id: int, asset: AssetConfig, user_id: str, mode: ResolveMode
    ) -> WalletAssignment:
        """Check that a wallet shown earlier is still valid for this submission."""
        mode = ResolveMode(mode)
        wallet = await self.repo.get_wallet(wallet_id)

        eligible = (
            wallet is not None
            and wallet.is_active
            and wallet.asset_id == asset.id
            and (
                wallet.user_id == user_id
                if mode == ResolveMode.PERSONAL
                else wallet.user_id is None
            )
        )
        if not eligible:
            logger.error(
                f"Wallet {wallet_id} not eligible for {asset.pair} {mode.value} (user {user_id})"
            )
            raise NoWalletAvailable(asset.currency, asset.network, mode.value, user_id)
        return wallet
