"""Payout calculation for prize pools.

Two structures are supported:

* fixed rank: a static rank -> percent table (HEADS_UP, MULTI_TABLE,
  SIT_N_GO, TOURNAMENT);
* percentile bands: every entrant inside a band splits that band's share
  equally (COMMUNITY_EVENT).

All amounts are integers and every division rounds down. Whatever the
rounding leaves over is handed to the first payout by :func:`apply_remainder`.
Standings are expected to be ranked already (see ``leaderboard.rank_entrants``).
"""
from typing import List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict

from .config import ArenaConfig, PayoutStructure, PayoutTier, PoolType
from .leaderboard import Entrant


class PayoutResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: str
    rank: int
    percentile: int
    payout_tier: PayoutTier
    payout_amount: int
    pool_share: str


class PreviewPlace(BaseModel):
    place: str
    amount: int


class PayoutPreview(BaseModel):
    prize_pool: int
    house_cut: int
    payouts: List[PreviewPlace]


class StructurePlace(BaseModel):
    place: str
    share: str


class StructureDescription(BaseModel):
    description: str
    tiers: List[StructurePlace]
    house_cut: str


def tier_from_rank(rank: int) -> PayoutTier:
    """Legacy label for fixed-rank payouts.

    Kept as-is even though the labels do not match their percentile
    meaning in small fields.
    """
    if rank == 1:
        return PayoutTier.ELITE_1
    if rank <= 3:
        return PayoutTier.TOP_5
    if rank <= 5:
        return PayoutTier.TOP_10
    return PayoutTier.TOP_25


def apply_remainder(payouts: Sequence[PayoutResult], distributable: int) -> Tuple[List[PayoutResult], int]:
    """Add the rounding remainder to the first payout.

    Returns:
        (adjusted payouts, remainder before adjustment)
    """
    payouts = list(payouts)
    remainder = distributable - sum(p.payout_amount for p in payouts)
    if remainder > 0 and payouts:
        first = payouts[0]
        payouts[0] = first.model_copy(update={"payout_amount": first.payout_amount + remainder})
    return payouts, remainder


def _format_bps(bps: int) -> str:
    return f"{bps / 100:g}%"


class PayoutEngine:
    """Pure payout math over a fixed configuration."""

    def __init__(self, config: Optional[ArenaConfig] = None):
        self.config = config or ArenaConfig()

    def house_cut(self, pool_type: PoolType, total_pool: int) -> int:
        return total_pool * self.config.house_cut_bps(pool_type) // 10_000

    def compute_payouts(self, pool_type: PoolType, standings: Sequence[Entrant],
                        distributable: int) -> List[PayoutResult]:
        """Compute awards for ranked standings.

        Args:
            pool_type: Selects the payout structure
            standings: Ranked entrants
            distributable: Total pool minus house cut

        Returns:
            Payouts in rank order (band order for percentile pools)
        """
        structure = self.config.structure(pool_type)
        if structure.is_percentile:
            payouts = self._percentile_payouts(structure, standings, distributable)
        else:
            payouts = self._fixed_rank_payouts(structure, standings, distributable)
        logger.debug(
            f"{PoolType(pool_type).value}: {len(payouts)} payouts totalling "
            f"{sum(p.payout_amount for p in payouts)} of {distributable}"
        )
        return payouts

    def _fixed_rank_payouts(self, structure: PayoutStructure, standings: Sequence[Entrant],
                            distributable: int) -> List[PayoutResult]:
        by_rank = {s.rank: s for s in standings}
        payouts = []
        for rank, percent in structure.ranks.items():
            entrant = by_rank.get(rank)
            if entrant is None:
                continue
            amount = distributable * percent // 100
            if amount < self.config.min_payout:
                continue
            payouts.append(PayoutResult(
                identity=entrant.identity,
                rank=rank,
                percentile=entrant.percentile,
                payout_tier=tier_from_rank(rank),
                payout_amount=amount,
                pool_share=f"{percent}%",
            ))
        return payouts

    def _percentile_payouts(self, structure: PayoutStructure, standings: Sequence[Entrant],
                            distributable: int) -> List[PayoutResult]:
        payouts = []
        prev_max = 0
        for band in structure.bands:
            members = [s for s in standings if prev_max < s.percentile <= band.percentile]
            prev_max = band.percentile
            if not members:
                continue
            band_pool = distributable * band.pool_share // 100
            per_entrant = band_pool // len(members)
            if per_entrant < self.config.min_payout:
                continue
            for entrant in members:
                payouts.append(PayoutResult(
                    identity=entrant.identity,
                    rank=entrant.rank,
                    percentile=entrant.percentile,
                    payout_tier=band.tier,
                    payout_amount=per_entrant,
                    pool_share=f"{band.pool_share}% split",
                ))
        return payouts

    def preview_payouts(self, pool_type: PoolType, total_pool: int, entrant_count: int) -> PayoutPreview:
        """What-would-I-win figures without standings or ledger access."""
        house_cut = self.house_cut(pool_type, total_pool)
        prize_pool = total_pool - house_cut
        structure = self.config.structure(pool_type)
        places = []
        if structure.is_percentile:
            for band in structure.bands:
                head_count = -(-entrant_count * band.percentile // 100)
                band_pool = prize_pool * band.pool_share // 100
                places.append(PreviewPlace(
                    place=f"Top {band.percentile}%",
                    amount=band_pool // head_count if head_count > 0 else 0,
                ))
        else:
            for rank, percent in structure.ranks.items():
                places.append(PreviewPlace(place=f"#{rank}", amount=prize_pool * percent // 100))
        return PayoutPreview(prize_pool=prize_pool, house_cut=house_cut, payouts=places)

    def describe_structure(self, pool_type: PoolType) -> StructureDescription:
        structure = self.config.structure(pool_type)
        if structure.is_percentile:
            tiers = [StructurePlace(place=f"Top {b.percentile}%", share=f"{b.pool_share}%")
                     for b in structure.bands]
        else:
            tiers = [StructurePlace(place=f"#{rank}", share=f"{percent}%")
                     for rank, percent in structure.ranks.items()]
        return StructureDescription(
            description=structure.description,
            tiers=tiers,
            house_cut=_format_bps(self.config.house_cut_bps(pool_type)),
        )
