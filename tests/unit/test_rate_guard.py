"""Unit tests for cooldown and velocity checks."""
from concurrent.futures import ThreadPoolExecutor
from arena.core.rate_guard import InMemoryCooldownStore, RateGuard


def test_first_transaction_allowed(rate_guard):
    status = rate_guard.check_cooldown("alice")
    assert status.allowed
    assert status.remaining_ms == 0


def test_cooldown_window(rate_guard, clock):
    """Test the cooldown blocks until exactly 120s have elapsed."""
    rate_guard.record_transaction("alice")

    clock.advance(30_000)
    status = rate_guard.check_cooldown("alice")
    assert not status.allowed
    assert status.remaining_ms == 90_000

    clock.advance(89_999)
    status = rate_guard.check_cooldown("alice")
    assert not status.allowed
    assert status.remaining_ms == 1

    clock.advance(1)
    status = rate_guard.check_cooldown("alice")
    assert status.allowed
    assert status.remaining_ms == 0


def test_cooldown_is_per_identity(rate_guard):
    rate_guard.record_transaction("alice")
    assert not rate_guard.check_cooldown("alice").allowed
    assert rate_guard.check_cooldown("bob").allowed


def test_explicit_timestamps():
    guard = RateGuard(cooldown_ms=1000)
    guard.record_transaction("alice", timestamp_ms=5000)
    assert guard.check_cooldown("alice", now_ms=5500).remaining_ms == 500
    assert guard.check_cooldown("alice", now_ms=6000).allowed


def test_velocity_threshold(rate_guard):
    """Test the threshold itself is flagged."""
    assert not rate_guard.is_velocity_flagged(49_999)
    assert rate_guard.is_velocity_flagged(50_000)
    assert rate_guard.is_velocity_flagged(100_000)


def test_store_concurrent_writes():
    """Test the store stays consistent under concurrent writers."""
    store = InMemoryCooldownStore()

    def write(i):
        store.set(f"user-{i % 50}", i)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(write, range(1000)))

    assert len(store) == 50
    assert all(store.get(f"user-{i}") is not None for i in range(50))


def test_store_drops_expired_identities():
    """Test identities past their cooldown are swept on a later write."""
    store = InMemoryCooldownStore(ttl_ms=1000)
    store.set("alice", 0)
    store.set("bob", 500)
    assert len(store) == 2

    store.set("carol", 1200)
    assert store.get("alice") is None
    assert store.get("bob") == 500
    assert len(store) == 2


def test_store_sweeps_once_per_window():
    store = InMemoryCooldownStore(ttl_ms=1000)
    store.set("alice", 0)
    store.set("bob", 2000)
    # within the same window nothing is swept again
    store.set("carol", 2500)
    assert store.get("bob") == 2000
    assert store.get("alice") is None


def test_guard_store_uses_cooldown_as_ttl(clock):
    guard = RateGuard(cooldown_ms=1000, clock=clock)
    guard.record_transaction("alice")
    clock.advance(1000)
    guard.record_transaction("bob")
    assert guard.store.get("alice") is None
    assert guard.check_cooldown("alice").allowed
    assert not guard.check_cooldown("bob").allowed


def test_guard_keeps_supplied_empty_store():
    store = InMemoryCooldownStore()
    guard = RateGuard(store=store)
    guard.record_transaction("alice", timestamp_ms=1)
    assert store.get("alice") == 1
