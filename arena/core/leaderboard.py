"""Leaderboard contract, standings and ranking."""
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict


@dataclass
class ScoreRecord:
    """A participant's raw result in a pool."""
    identity: str
    score: float
    entry_time: float
    display_name: str = "Anonymous"
    latency_ms: Optional[int] = None


class Entrant(BaseModel):
    """Ranked standing of one participant."""
    model_config = ConfigDict(frozen=True)

    identity: str
    display_name: str = "Anonymous"
    score: float
    rank: int
    percentile: int
    entry_time: float
    latency_ms: Optional[int] = None


def calculate_percentile(rank: int, total: int) -> int:
    """ceil(rank / total * 100) in integer math; 100 for an empty field."""
    if total <= 0:
        return 100
    return -(-rank * 100 // total)


def tie_break_key(record: ScoreRecord):
    """Score descending, latency ascending (missing last), entry time ascending."""
    latency = record.latency_ms if record.latency_ms is not None else float("inf")
    return (-record.score, latency, record.entry_time)


def rank_entrants(records: Iterable[ScoreRecord], total: int, offset: int = 0) -> List[Entrant]:
    """Turn already-ordered records into standings.

    Args:
        records: Records in tie-break order
        total: Size of the whole field, used for percentiles
        offset: Absolute position of the first record

    Returns:
        Standings with 1-based absolute ranks
    """
    return [
        Entrant(
            identity=r.identity,
            display_name=r.display_name,
            score=r.score,
            rank=offset + i,
            percentile=calculate_percentile(offset + i, total),
            entry_time=r.entry_time,
            latency_ms=r.latency_ms,
        )
        for i, r in enumerate(records, 1)
    ]


class LeaderboardService(ABC):
    """Source of ranked standings for a pool."""

    @abstractmethod
    async def fetch_standings(self, pool_id: str, limit: int = 100, offset: int = 0) -> List[Entrant]:
        """Get one page of standings, pre-sorted by the tie-break order."""
        pass


class InMemoryLeaderboard(LeaderboardService):
    """Leaderboards for all pools, held in memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._boards: Dict[str, List[ScoreRecord]] = {}

    def record_score(self, pool_id: str, identity: str, score: float,
                     display_name: str = "Anonymous", latency_ms: Optional[int] = None,
                     entry_time: Optional[float] = None) -> ScoreRecord:
        """Record (or replace) a participant's score in a pool."""
        record = ScoreRecord(
            identity=identity,
            score=score,
            entry_time=time.time() if entry_time is None else entry_time,
            display_name=display_name,
            latency_ms=latency_ms,
        )
        with self._lock:
            board = [r for r in self._boards.get(pool_id, []) if r.identity != identity]
            board.append(record)
            board.sort(key=tie_break_key)
            self._boards[pool_id] = board
        return record

    async def fetch_standings(self, pool_id: str, limit: int = 100, offset: int = 0) -> List[Entrant]:
        with self._lock:
            board = list(self._boards.get(pool_id, []))
        return rank_entrants(board[offset:offset + limit], len(board), offset)

    def get_top_scores(self, pool_id: str, limit: int = 10) -> List[Entrant]:
        with self._lock:
            board = list(self._boards.get(pool_id, []))
        return rank_entrants(board[:limit], len(board))

    def get_player_rank(self, pool_id: str, identity: str) -> Optional[int]:
        with self._lock:
            board = self._boards.get(pool_id, [])
            return next((i for i, r in enumerate(board, 1) if r.identity == identity), None)
