"""Per-identity transaction cooldown and velocity flagging."""
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

TRANSACTION_COOLDOWN_MS = 120_000
VELOCITY_THRESHOLD = 50_000
VELOCITY_FLAG = "VELOCITY_GUARDIAN"


def now_ms() -> int:
    """Wall clock in integer milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CooldownStatus:
    allowed: bool
    remaining_ms: int


class CooldownStore(ABC):
    """Storage for last-transaction timestamps.

    The in-memory store is scoped to one process. Multi-instance
    deployments plug a shared key-value store in here.
    """

    @abstractmethod
    def get(self, identity: str) -> Optional[int]:
        """Get the last transaction timestamp (ms) for an identity."""
        pass

    @abstractmethod
    def set(self, identity: str, timestamp_ms: int) -> None:
        """Record a transaction timestamp (ms) for an identity."""
        pass


class InMemoryCooldownStore(CooldownStore):
    """Lock-guarded dict of identity -> last transaction time.

    With ``ttl_ms`` set, entries older than the ttl are dropped on write, at
    most once per ttl window.
    """

    def __init__(self, ttl_ms: Optional[int] = None):
        self.ttl_ms = ttl_ms
        self._lock = threading.Lock()
        self._last: Dict[str, int] = {}
        self._last_sweep: Optional[int] = None

    def get(self, identity: str) -> Optional[int]:
        with self._lock:
            return self._last.get(identity)

    def set(self, identity: str, timestamp_ms: int) -> None:
        with self._lock:
            self._last[identity] = timestamp_ms
            if self.ttl_ms is None:
                return
            if self._last_sweep is None or timestamp_ms - self._last_sweep >= self.ttl_ms:
                self._sweep(timestamp_ms - self.ttl_ms)
                self._last_sweep = timestamp_ms

    def _sweep(self, cutoff_ms: int) -> None:
        expired = [identity for identity, ts in self._last.items() if ts <= cutoff_ms]
        for identity in expired:
            del self._last[identity]

    def __len__(self) -> int:
        with self._lock:
            return len(self._last)


class RateGuard:
    """Cooldown and velocity policy for stake requests."""

    def __init__(
        self,
        store: Optional[CooldownStore] = None,
        cooldown_ms: int = TRANSACTION_COOLDOWN_MS,
        velocity_threshold: int = VELOCITY_THRESHOLD,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.store = store if store is not None else InMemoryCooldownStore(ttl_ms=cooldown_ms)
        self.cooldown_ms = cooldown_ms
        self.velocity_threshold = velocity_threshold
        self.clock = clock or now_ms

    def check_cooldown(self, identity: str, now_ms: Optional[int] = None) -> CooldownStatus:
        """Check whether an identity may transact now."""
        last = self.store.get(identity)
        if last is None:
            return CooldownStatus(allowed=True, remaining_ms=0)

        now = self.clock() if now_ms is None else now_ms
        remaining = self.cooldown_ms - (now - last)
        return CooldownStatus(allowed=remaining <= 0, remaining_ms=max(0, remaining))

    def record_transaction(self, identity: str, timestamp_ms: Optional[int] = None) -> None:
        self.store.set(identity, self.clock() if timestamp_ms is None else timestamp_ms)

    def is_velocity_flagged(self, amount: int) -> bool:
        """Large single stakes always go to manual review."""
        return amount >= self.velocity_threshold
