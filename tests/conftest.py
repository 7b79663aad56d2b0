"""Test configuration and fixtures for Diamond Arena."""
import os
import pytest
from arena.core.config import ArenaConfig, PoolType
from arena.core.leaderboard import InMemoryLeaderboard, rank_entrants, ScoreRecord
from arena.core.ledger import InMemoryLedger
from arena.core.lifecycle import PoolLifecycleController
from arena.core.pools import InMemoryPoolRegistry
from arena.core.rate_guard import RateGuard
from arena.core.vault import StakingVault


class FakeClock:
    """Settable millisecond clock for cooldown tests."""

    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def config():
    """Default engine configuration."""
    return ArenaConfig()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_guard(clock):
    return RateGuard(clock=clock)


@pytest.fixture
def registry():
    return InMemoryPoolRegistry()


@pytest.fixture
def ledger(registry):
    return InMemoryLedger(registry=registry)


@pytest.fixture
def leaderboard():
    return InMemoryLeaderboard()


@pytest.fixture
def vault(ledger, config, rate_guard):
    return StakingVault(ledger, config, rate_guard=rate_guard)


@pytest.fixture
def controller(registry, leaderboard, vault):
    return PoolLifecycleController(registry, leaderboard, vault)


@pytest.fixture
def make_standings():
    """Build ranked standings from identities in finishing order."""
    def _make(count, prefix="p"):
        records = [
            ScoreRecord(identity=f"{prefix}{i}", score=float(count - i), entry_time=float(i))
            for i in range(1, count + 1)
        ]
        return rank_entrants(records, len(records))
    return _make


@pytest.fixture
def open_pool(controller):
    """Create and activate a pool, returning it."""
    async def _open(pool_type=PoolType.MULTI_TABLE, entry_fee=100, max_entrants=None):
        pool = await controller.create_pool("Test Pool", pool_type, entry_fee, max_entrants=max_entrants)
        return await controller.activate(pool.id)
    return _open


@pytest.fixture
def env_setup():
    """Set up environment variables for testing."""
    os.environ["ARENA_LOG_LEVEL"] = "DEBUG"
    yield
    del os.environ["ARENA_LOG_LEVEL"]
