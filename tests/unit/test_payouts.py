"""Unit tests for payout calculation."""
import pytest
from arena.core.config import ArenaConfig, PayoutTier, PoolType
from arena.core.payouts import PayoutEngine, apply_remainder, tier_from_rank


@pytest.fixture
def engine(config):
    return PayoutEngine(config)


def test_house_cut(engine):
    assert engine.house_cut(PoolType.HEADS_UP, 1000) == 100
    assert engine.house_cut(PoolType.TOURNAMENT, 1000) == 120
    assert engine.house_cut(PoolType.COMMUNITY_EVENT, 999) == 149


def test_fixed_rank(engine, make_standings):
    """Test the 50/30/20 split over a 1000 pool."""
    payouts = engine.compute_payouts(PoolType.MULTI_TABLE, make_standings(5), 1000)
    assert [(p.identity, p.payout_amount) for p in payouts] == [("p1", 500), ("p2", 300), ("p3", 200)]
    assert [p.pool_share for p in payouts] == ["50%", "30%", "20%"]
    assert [p.payout_tier for p in payouts] == [PayoutTier.ELITE_1, PayoutTier.TOP_5, PayoutTier.TOP_5]


def test_fixed_rank_short_field(engine, make_standings):
    """Test missing ranks are skipped and their share is not paid."""
    payouts = engine.compute_payouts(PoolType.MULTI_TABLE, make_standings(2), 1000)
    assert [p.payout_amount for p in payouts] == [500, 300]


def test_fixed_rank_below_min_payout(make_standings):
    engine = PayoutEngine(ArenaConfig(min_payout=3))
    payouts = engine.compute_payouts(PoolType.MULTI_TABLE, make_standings(3), 10)
    # 5, 3, 2 -> the 2 is dropped
    assert [p.payout_amount for p in payouts] == [5, 3]


def test_tournament_tiers(engine, make_standings):
    payouts = engine.compute_payouts(PoolType.TOURNAMENT, make_standings(10), 1000)
    assert [p.payout_amount for p in payouts] == [400, 250, 150, 100, 100]
    assert [p.payout_tier for p in payouts][-1] == PayoutTier.TOP_10


def test_legacy_tier_labels():
    assert tier_from_rank(1) == PayoutTier.ELITE_1
    assert tier_from_rank(3) == PayoutTier.TOP_5
    assert tier_from_rank(5) == PayoutTier.TOP_10
    assert tier_from_rank(6) == PayoutTier.TOP_25


def test_percentile_bands(engine, make_standings):
    """Test 100 entrants over a 1000 pool."""
    payouts = engine.compute_payouts(PoolType.COMMUNITY_EVENT, make_standings(100), 1000)
    by_identity = {p.identity: p for p in payouts}

    assert len(payouts) == 100
    assert by_identity["p1"].payout_amount == 300
    assert by_identity["p1"].payout_tier == PayoutTier.ELITE_1
    assert by_identity["p1"].pool_share == "30% split"
    # ranks 2-5 split 200
    assert by_identity["p2"].payout_amount == 50
    assert by_identity["p5"].payout_tier == PayoutTier.TOP_5
    # ranks 6-10 split 200
    assert by_identity["p6"].payout_amount == 40
    # ranks 11-25 split 150
    assert by_identity["p11"].payout_amount == 10
    # ranks 26-50 split 100
    assert by_identity["p26"].payout_amount == 4
    # ranks 51-100 split 50
    assert by_identity["p100"].payout_amount == 1
    assert sum(p.payout_amount for p in payouts) == 1000


def test_percentile_every_entrant_in_one_band(engine, make_standings):
    payouts = engine.compute_payouts(PoolType.COMMUNITY_EVENT, make_standings(37), 10_000)
    identities = [p.identity for p in payouts]
    assert len(identities) == len(set(identities)) == 37


def test_percentile_empty_bands_skipped(engine, make_standings):
    """Test a small field leaves low bands empty without failing."""
    payouts = engine.compute_payouts(PoolType.COMMUNITY_EVENT, make_standings(3), 1000)
    # percentiles 34, 67, 100 fall in TOP_50 and PARTICIPANTS only
    assert [(p.payout_tier, p.payout_amount) for p in payouts] == [
        (PayoutTier.TOP_50, 100),
        (PayoutTier.PARTICIPANTS, 25),
        (PayoutTier.PARTICIPANTS, 25),
    ]


def test_percentile_dust_dropped(make_standings):
    engine = PayoutEngine(ArenaConfig())
    payouts = engine.compute_payouts(PoolType.COMMUNITY_EVENT, make_standings(100), 100)
    # PARTICIPANTS: 5 split 50 ways rounds to 0
    assert all(p.payout_tier != PayoutTier.PARTICIPANTS for p in payouts)


def test_no_standings(engine):
    assert engine.compute_payouts(PoolType.MULTI_TABLE, [], 1000) == []
    assert engine.compute_payouts(PoolType.COMMUNITY_EVENT, [], 1000) == []


def test_compute_is_idempotent(engine, make_standings):
    standings = make_standings(40)
    first = engine.compute_payouts(PoolType.COMMUNITY_EVENT, standings, 12_345)
    second = engine.compute_payouts(PoolType.COMMUNITY_EVENT, standings, 12_345)
    assert first == second


def test_apply_remainder(engine, make_standings):
    """Test the whole remainder goes to the first payout."""
    payouts = engine.compute_payouts(PoolType.MULTI_TABLE, make_standings(3), 1001)
    assert sum(p.payout_amount for p in payouts) == 1000

    adjusted, remainder = apply_remainder(payouts, 1001)
    assert remainder == 1
    assert adjusted[0].payout_amount == 501
    assert sum(p.payout_amount for p in adjusted) == 1001
    assert payouts[0].payout_amount == 500


def test_apply_remainder_unpaid_ranks(engine, make_standings):
    """Test unfilled places roll into the first payout too."""
    payouts = engine.compute_payouts(PoolType.MULTI_TABLE, make_standings(1), 1000)
    adjusted, remainder = apply_remainder(payouts, 1000)
    assert remainder == 500
    assert adjusted[0].payout_amount == 1000


def test_apply_remainder_no_payouts():
    assert apply_remainder([], 500) == ([], 500)


@pytest.mark.parametrize("pool_type", list(PoolType))
def test_payouts_never_exceed_distributable(engine, make_standings, pool_type):
    for count in (1, 2, 7, 50, 333):
        for distributable in (0, 1, 99, 1000, 987_654):
            payouts = engine.compute_payouts(pool_type, make_standings(count), distributable)
            assert sum(p.payout_amount for p in payouts) <= distributable
            assert all(p.payout_amount >= 1 for p in payouts)


def test_preview_fixed(engine):
    preview = engine.preview_payouts(PoolType.MULTI_TABLE, 1000, 10)
    assert preview.house_cut == 100
    assert preview.prize_pool == 900
    assert [(p.place, p.amount) for p in preview.payouts] == [("#1", 450), ("#2", 270), ("#3", 180)]


def test_preview_percentile(engine):
    preview = engine.preview_payouts(PoolType.COMMUNITY_EVENT, 10_000, 200)
    assert preview.house_cut == 1500
    assert preview.prize_pool == 8500
    first = preview.payouts[0]
    assert first.place == "Top 1%"
    # 2 people share 30% of 8500
    assert first.amount == 1275
    assert preview.payouts[-1].place == "Top 100%"


def test_preview_no_entrants(engine):
    preview = engine.preview_payouts(PoolType.COMMUNITY_EVENT, 1000, 0)
    assert all(p.amount == 0 for p in preview.payouts)


def test_describe_structure(engine):
    info = engine.describe_structure(PoolType.TOURNAMENT)
    assert info.description == "Deep Payout"
    assert info.house_cut == "12%"
    assert [(t.place, t.share) for t in info.tiers][0] == ("#1", "40%")

    community = engine.describe_structure(PoolType.COMMUNITY_EVENT)
    assert community.house_cut == "15%"
    assert community.tiers[0].place == "Top 1%"
    assert community.tiers[0].share == "30%"
