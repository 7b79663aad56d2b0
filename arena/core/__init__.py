"""Stake settlement and payout engine."""
from .config import ArenaConfig, PayoutTier, PoolType, StakeTier, load_config
from .errors import (
    ArenaError,
    ConfigError,
    CooldownActive,
    ErrorKind,
    InvalidPoolTransition,
    InvalidStakeAmount,
    LedgerCommitFailed,
    LedgerError,
    PoolNotFound,
    PoolStateAmbiguous,
)
from .leaderboard import Entrant, InMemoryLeaderboard, LeaderboardService
from .ledger import InMemoryLedger, LedgerService
from .lifecycle import DistributionReport, PoolLifecycleController, RemainderHandling
from .payouts import PayoutEngine, PayoutResult, apply_remainder
from .pools import InMemoryPoolRegistry, PoolRegistry, PoolStatus, PrizePool
from .rate_guard import RateGuard
from .rpc import RpcLedger
from .stake import StakeEntry, StakeReceipt, WalletSource, calculate_stake_breakdown
from .tiers import TierClassifier
from .vault import StakingVault

__all__ = [
    "ArenaConfig", "PayoutTier", "PoolType", "StakeTier", "load_config",
    "ArenaError", "ConfigError", "CooldownActive", "ErrorKind", "InvalidPoolTransition",
    "InvalidStakeAmount", "LedgerCommitFailed", "LedgerError", "PoolNotFound", "PoolStateAmbiguous",
    "Entrant", "InMemoryLeaderboard", "LeaderboardService",
    "InMemoryLedger", "LedgerService", "RpcLedger",
    "DistributionReport", "PoolLifecycleController", "RemainderHandling",
    "PayoutEngine", "PayoutResult", "apply_remainder",
    "InMemoryPoolRegistry", "PoolRegistry", "PoolStatus", "PrizePool",
    "RateGuard", "StakeEntry", "StakeReceipt", "WalletSource", "calculate_stake_breakdown",
    "TierClassifier", "StakingVault",
]
