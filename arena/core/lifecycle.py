"""Prize pool lifecycle and settlement."""
import asyncio
from datetime import datetime
from enum import Enum
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from .config import ArenaConfig, PoolType
from .errors import ErrorKind, InvalidPoolTransition, PoolNotFound, PoolStateAmbiguous
from .leaderboard import Entrant, LeaderboardService
from .payouts import PayoutEngine, PayoutResult, apply_remainder
from .pools import ROLLBACK_FROM, PoolRegistry, PoolStatus, PrizePool, can_transition, utcnow
from .stake import StakeReceipt
from .vault import StakingVault


class RemainderHandling(str, Enum):
    ADDED_TO_FIRST = "ADDED_TO_FIRST"
    BURNED = "BURNED"


class DistributionReport(BaseModel):
    """Audit record of one settlement run."""
    success: bool
    pool_id: str
    total_distributed: int = 0
    house_take: int = 0
    payouts: List[PayoutResult] = Field(default_factory=list)
    remainder_handling: RemainderHandling = RemainderHandling.ADDED_TO_FIRST
    settled_at: datetime = Field(default_factory=utcnow)
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None


class PoolSnapshot(BaseModel):
    pool: PrizePool
    standings: List[Entrant]
    projected_payouts: List[PayoutResult]


class PoolLifecycleController:
    """Drives pools through their status machine. Sole writer of pool status."""

    def __init__(
        self,
        registry: PoolRegistry,
        leaderboard: LeaderboardService,
        vault: StakingVault,
        engine: Optional[PayoutEngine] = None,
        config: Optional[ArenaConfig] = None,
    ):
        self.registry = registry
        self.leaderboard = leaderboard
        self.vault = vault
        self.config = config or vault.config
        self.engine = engine or PayoutEngine(self.config)

    async def create_pool(
        self,
        name: str,
        pool_type: PoolType,
        entry_fee: int,
        max_entrants: Optional[int] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> PrizePool:
        """Create a pool in REGISTERING with the pool type's house cut."""
        pool_type = PoolType(pool_type)
        type_config = self.config.pool_types[pool_type]
        pool = await self.registry.create_pool(
            name=name,
            pool_type=pool_type,
            entry_fee=entry_fee,
            max_entrants=max_entrants or type_config.max_players,
            house_cut_bps=type_config.house_cut_bps,
            start_time=start_time or utcnow(),
            end_time=end_time,
        )
        logger.info(f"Created {pool_type.value} pool {pool.id} ({name})")
        return pool

    async def activate(self, pool_id: str) -> PrizePool:
        return await self._transition(pool_id, PoolStatus.ACTIVE)

    async def cancel(self, pool_id: str, refund_entries: bool = True) -> List[StakeReceipt]:
        """Cancel a pool that has not started settling, refunding its entries."""
        await self._transition(pool_id, PoolStatus.CANCELLED)
        if not refund_entries:
            return []
        return await self.refund_pool(pool_id)

    async def refund_pool(self, pool_id: str) -> List[StakeReceipt]:
        """Refund every still-active entry of a pool. Safe to call again after a failure."""
        receipts = []
        for entry in self.vault.active_entries(pool_id):
            receipts.append(await self.vault.refund(entry.id, "POOL_CANCELLED"))
        return receipts

    async def standings(self, pool_id: str) -> List[Entrant]:
        """Fetch the full standings, page by page."""
        page_size = self.config.standings_page_size
        standings: List[Entrant] = []
        while True:
            page = await self.leaderboard.fetch_standings(pool_id, limit=page_size, offset=len(standings))
            standings.extend(page)
            if len(page) < page_size:
                return standings

    async def pool_with_standings(self, pool_id: str) -> PoolSnapshot:
        pool = await self.registry.read_pool(pool_id)
        standings = await self.standings(pool_id)
        projected = self.engine.compute_payouts(pool.pool_type, standings, pool.prize_pool)
        return PoolSnapshot(pool=pool, standings=standings, projected_payouts=projected)

    async def distribute_prizes(self, pool_id: str) -> DistributionReport:
        """Settle a pool: compute payouts and commit them in one ledger call.

        The pool ends up either SETTLED or back in ACTIVE. Only a failed
        rollback raises (PoolStateAmbiguous).
        """
        try:
            current = (await self.registry.read_pool(pool_id)).status
            # CALCULATING closes entries, so totals read from here on are final.
            pool = await self._transition(pool_id, PoolStatus.CALCULATING, current=current)
        except (PoolNotFound, InvalidPoolTransition) as e:
            logger.warning(f"Cannot settle pool {pool_id}: {e}")
            return DistributionReport(
                success=False,
                pool_id=pool_id,
                remainder_handling=RemainderHandling.BURNED,
                error_kind=e.kind,
                error=e.message,
            )

        house_cut = 0
        try:
            standings = await self.standings(pool_id)
            house_cut = self.engine.house_cut(pool.pool_type, pool.total_pool)
            distributable = pool.total_pool - house_cut
            payouts = self.engine.compute_payouts(pool.pool_type, standings, distributable)
            payouts, remainder = apply_remainder(payouts, distributable)
            if remainder > 0 and payouts:
                logger.debug(f"Pool {pool_id}: remainder {remainder} added to {payouts[0].identity}")

            await self._transition(pool_id, PoolStatus.DISTRIBUTING, current=PoolStatus.CALCULATING)
            total = await self.vault.distribute(pool_id, payouts, house_cut)
        except asyncio.CancelledError:
            await self._rollback(pool_id)
            raise
        except Exception as e:
            logger.warning(f"Distribution for pool {pool_id} failed, rolling back: {e}")
            await self._rollback(pool_id)
            return DistributionReport(
                success=False,
                pool_id=pool_id,
                house_take=house_cut,
                error_kind=ErrorKind.DISTRIBUTION_FAILED,
                error=str(e),
            )

        settled_at = utcnow()
        try:
            await self.registry.update_status(pool_id, PoolStatus.SETTLED,
                                              expected=PoolStatus.DISTRIBUTING, settled_at=settled_at)
        except Exception as e:
            # Money has moved; rolling back to ACTIVE would be wrong.
            logger.critical(f"Pool {pool_id} distributed but could not be marked SETTLED: {e}")
            raise PoolStateAmbiguous(pool_id, e) from e

        logger.info(f"Pool {pool_id} settled: {total} distributed to {len(payouts)} entrants, house {house_cut}")
        return DistributionReport(
            success=True,
            pool_id=pool_id,
            total_distributed=total,
            house_take=house_cut,
            payouts=payouts,
            remainder_handling=RemainderHandling.ADDED_TO_FIRST,
            settled_at=settled_at,
        )

    async def _transition(self, pool_id: str, target: PoolStatus,
                          current: Optional[PoolStatus] = None) -> PrizePool:
        if current is None:
            current = (await self.registry.read_pool(pool_id)).status
        if not can_transition(current, target):
            raise InvalidPoolTransition(pool_id, current.value, target.value)
        pool = await self.registry.update_status(pool_id, target, expected=current)
        logger.info(f"Pool {pool_id}: {current.value} -> {target.value}")
        return pool

    async def _rollback(self, pool_id: str) -> None:
        """Return a pool stuck mid-settlement to ACTIVE."""
        try:
            pool = await self.registry.read_pool(pool_id)
            if pool.status not in ROLLBACK_FROM:
                raise InvalidPoolTransition(pool_id, pool.status.value, PoolStatus.ACTIVE.value)
            await self.registry.update_status(pool_id, PoolStatus.ACTIVE, expected=pool.status)
        except Exception as e:
            logger.critical(f"Rollback of pool {pool_id} failed, status is ambiguous: {e}")
            raise PoolStateAmbiguous(pool_id, e) from e
        logger.info(f"Pool {pool_id}: {pool.status.value} -> ACTIVE (rollback)")
