"""Unit tests for leaderboard ranking."""
import asyncio
import pytest
from arena.core.leaderboard import (
    InMemoryLeaderboard,
    ScoreRecord,
    calculate_percentile,
    rank_entrants,
    tie_break_key,
)


@pytest.mark.parametrize("rank,total,expected", [
    (1, 100, 1),
    (2, 100, 2),
    (100, 100, 100),
    (1, 3, 34),
    (2, 3, 67),
    (3, 3, 100),
    (1, 1, 100),
    (1, 0, 100),
    (5, 0, 100),
])
def test_calculate_percentile(rank, total, expected):
    assert calculate_percentile(rank, total) == expected


def test_tie_break_order():
    """Test score desc, then latency asc (missing last), then entry time."""
    records = [
        ScoreRecord(identity="late", score=50, entry_time=3.0, latency_ms=100),
        ScoreRecord(identity="no-latency", score=50, entry_time=0.0),
        ScoreRecord(identity="fast", score=50, entry_time=5.0, latency_ms=20),
        ScoreRecord(identity="early", score=50, entry_time=1.0, latency_ms=100),
        ScoreRecord(identity="top", score=90, entry_time=9.0, latency_ms=900),
    ]
    ordered = [r.identity for r in sorted(records, key=tie_break_key)]
    assert ordered == ["top", "fast", "early", "late", "no-latency"]


def test_rank_entrants_with_offset():
    records = [ScoreRecord(identity=f"p{i}", score=10 - i, entry_time=i) for i in range(3)]
    standings = rank_entrants(records, total=10, offset=4)
    assert [s.rank for s in standings] == [5, 6, 7]
    assert [s.percentile for s in standings] == [50, 60, 70]


def test_record_score_replaces_previous():
    board = InMemoryLeaderboard()
    board.record_score("pool", "alice", 10, entry_time=1.0)
    board.record_score("pool", "bob", 20, entry_time=2.0)
    board.record_score("pool", "alice", 30, entry_time=3.0)

    top = board.get_top_scores("pool")
    assert [(e.identity, e.score) for e in top] == [("alice", 30), ("bob", 20)]
    assert board.get_player_rank("pool", "bob") == 2
    assert board.get_player_rank("pool", "nobody") is None


def test_fetch_standings_pages():
    """Test pages carry absolute ranks and whole-field percentiles."""
    board = InMemoryLeaderboard()
    for i in range(25):
        board.record_score("pool", f"p{i:02d}", score=100 - i, entry_time=float(i))

    first = asyncio.run(board.fetch_standings("pool", limit=10))
    third = asyncio.run(board.fetch_standings("pool", limit=10, offset=20))

    assert [e.rank for e in first] == list(range(1, 11))
    assert len(third) == 5
    assert third[0].identity == "p20"
    assert third[0].rank == 21
    assert third[-1].percentile == 100


def test_empty_board():
    board = InMemoryLeaderboard()
    assert asyncio.run(board.fetch_standings("none")) == []
    assert board.get_top_scores("none") == []
