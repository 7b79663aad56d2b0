"""Prize pools and the pool registry contract."""
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, computed_field

from .config import PoolType
from .errors import InvalidPoolTransition, LedgerError, PoolNotFound


class PoolStatus(str, Enum):
    REGISTERING = "REGISTERING"
    ACTIVE = "ACTIVE"
    CALCULATING = "CALCULATING"
    DISTRIBUTING = "DISTRIBUTING"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"


# Forward moves only. Rollbacks to ACTIVE are handled separately.
TRANSITIONS = {
    PoolStatus.REGISTERING: {PoolStatus.ACTIVE, PoolStatus.CANCELLED},
    PoolStatus.ACTIVE: {PoolStatus.CALCULATING, PoolStatus.CANCELLED},
    PoolStatus.CALCULATING: {PoolStatus.DISTRIBUTING},
    PoolStatus.DISTRIBUTING: {PoolStatus.SETTLED},
    PoolStatus.SETTLED: set(),
    PoolStatus.CANCELLED: set(),
}

ROLLBACK_FROM = {PoolStatus.CALCULATING, PoolStatus.DISTRIBUTING}

ACCEPTING_ENTRIES = {PoolStatus.REGISTERING, PoolStatus.ACTIVE}


def can_transition(current: PoolStatus, target: PoolStatus) -> bool:
    return target in TRANSITIONS[current]


class PrizePool(BaseModel):
    """A competition instance."""
    id: str
    name: str
    pool_type: PoolType
    status: PoolStatus = PoolStatus.REGISTERING
    entry_fee: int = 0
    total_pool: int = 0
    total_burned: int = 0
    house_cut_bps: int = 0
    entrant_count: int = 0
    max_entrants: int
    start_time: datetime
    end_time: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    @computed_field
    @property
    def house_cut(self) -> int:
        return self.total_pool * self.house_cut_bps // 10_000

    @computed_field
    @property
    def prize_pool(self) -> int:
        return self.total_pool - self.house_cut


class PoolRegistry(ABC):
    """External store of prize pools."""

    @abstractmethod
    async def create_pool(
        self,
        name: str,
        pool_type: PoolType,
        entry_fee: int,
        max_entrants: int,
        house_cut_bps: int,
        start_time: datetime,
        end_time: Optional[datetime] = None,
    ) -> PrizePool:
        pass

    @abstractmethod
    async def update_status(
        self,
        pool_id: str,
        status: PoolStatus,
        expected: Optional[PoolStatus] = None,
        settled_at: Optional[datetime] = None,
    ) -> PrizePool:
        """Set a pool's status.

        When ``expected`` is given the update only applies if the pool is
        currently in that status (compare-and-set).
        """
        pass

    @abstractmethod
    async def read_pool(self, pool_id: str) -> PrizePool:
        """Raises PoolNotFound for unknown ids."""
        pass


class InMemoryPoolRegistry(PoolRegistry):
    """Process-local registry used by tests and the CLI simulator."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pools: Dict[str, PrizePool] = {}

    async def create_pool(self, name, pool_type, entry_fee, max_entrants, house_cut_bps,
                          start_time, end_time=None) -> PrizePool:
        pool = PrizePool(
            id=str(uuid.uuid4()),
            name=name,
            pool_type=pool_type,
            entry_fee=entry_fee,
            max_entrants=max_entrants,
            house_cut_bps=house_cut_bps,
            start_time=start_time,
            end_time=end_time,
        )
        with self._lock:
            self._pools[pool.id] = pool
        return pool

    async def update_status(self, pool_id, status, expected=None, settled_at=None) -> PrizePool:
        with self._lock:
            pool = self._get(pool_id)
            if expected is not None and pool.status != expected:
                raise InvalidPoolTransition(pool_id, pool.status.value, PoolStatus(status).value)
            update = {"status": PoolStatus(status)}
            if settled_at is not None:
                update["settled_at"] = settled_at
            pool = pool.model_copy(update=update)
            self._pools[pool_id] = pool
            return pool

    async def read_pool(self, pool_id: str) -> PrizePool:
        with self._lock:
            return self._get(pool_id)

    def list_pools(self) -> List[PrizePool]:
        with self._lock:
            return list(self._pools.values())

    def apply_stake(self, pool_id: str, pool_contribution: int, burn: int) -> None:
        """Book a stake into the pool totals, as the ledger's atomic stake does."""
        with self._lock:
            pool = self._pools.get(pool_id)
            if pool is None:
                raise LedgerError("POOL_NOT_FOUND")
            if pool.status not in ACCEPTING_ENTRIES:
                raise LedgerError("POOL_NOT_ACCEPTING_ENTRIES", pool.status.value)
            if pool.entrant_count >= pool.max_entrants:
                raise LedgerError("POOL_FULL")
            self._pools[pool_id] = pool.model_copy(update={
                "total_pool": pool.total_pool + pool_contribution,
                "total_burned": pool.total_burned + burn,
                "entrant_count": pool.entrant_count + 1,
            })

    def apply_refund(self, pool_id: str, pool_contribution: int) -> None:
        with self._lock:
            pool = self._pools.get(pool_id)
            if pool is None:
                return
            self._pools[pool_id] = pool.model_copy(update={
                "total_pool": pool.total_pool - pool_contribution,
                "entrant_count": pool.entrant_count - 1,
            })

    def _get(self, pool_id: str) -> PrizePool:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise PoolNotFound(pool_id)
        return pool


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
