"""Stake tier classification."""
from typing import List, Optional

from loguru import logger

from .config import ArenaConfig, StakeTier, TierBand
from .errors import InvalidStakeAmount

__all__ = ["StakeTier", "TierBand", "TierClassifier"]


class TierClassifier:
    """Maps a stake amount onto one of the configured tier bands.

    Pure and stateless after construction, so a single instance can be
    shared between concurrent requests.
    """

    def __init__(self, bands: Optional[List[TierBand]] = None):
        self.bands: List[TierBand] = list(bands) if bands is not None else list(ArenaConfig().tiers)
        self.min_stake = self.bands[0].min
        self.max_stake = self.bands[-1].max

    @classmethod
    def from_config(cls, config: ArenaConfig) -> "TierClassifier":
        return cls(config.tiers)

    def tier_info(self, amount) -> Optional[TierBand]:
        """Get tier info for display. Returns None instead of raising."""
        if isinstance(amount, bool) or not isinstance(amount, int):
            return None
        for band in self.bands:
            if band.contains(amount):
                return band
        return None

    def classify(self, amount) -> TierBand:
        """Classify a stake amount.

        Raises:
            InvalidStakeAmount: If the amount is not an integer inside a band
        """
        band = self.tier_info(amount)
        if band is None:
            raise InvalidStakeAmount(amount, self.min_stake, self.max_stake)
        logger.debug(f"Stake {amount} classified as {band.tier.value}")
        return band
