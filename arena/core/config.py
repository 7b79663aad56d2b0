"""Arena configuration: stake tiers, pool types and payout tables."""
import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ConfigError


class StakeTier(str, Enum):
    MICRO = "MICRO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    ELITE = "ELITE"


class PoolType(str, Enum):
    HEADS_UP = "HEADS_UP"
    MULTI_TABLE = "MULTI_TABLE"
    TOURNAMENT = "TOURNAMENT"
    SIT_N_GO = "SIT_N_GO"
    COMMUNITY_EVENT = "COMMUNITY_EVENT"


class PayoutTier(str, Enum):
    ELITE_1 = "ELITE_1"
    TOP_5 = "TOP_5"
    TOP_10 = "TOP_10"
    TOP_25 = "TOP_25"
    TOP_50 = "TOP_50"
    PARTICIPANTS = "PARTICIPANTS"


class TierBand(BaseModel):
    """Inclusive stake range mapped to a tier."""
    model_config = ConfigDict(frozen=True)

    tier: StakeTier
    min: int
    max: int
    level_required: int = 1
    icon: str = ""

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min > self.max:
            raise ValueError(f"{self.tier.value}: min {self.min} exceeds max {self.max}")
        return self

    def contains(self, amount: int) -> bool:
        return self.min <= amount <= self.max


class PoolTypeConfig(BaseModel):
    """House cut (basis points) and seat limits for a pool type."""
    model_config = ConfigDict(frozen=True)

    house_cut_bps: int = Field(ge=0, le=10_000)
    min_players: int = Field(ge=1)
    max_players: int = Field(ge=1)

    @model_validator(mode="after")
    def _check_players(self):
        if self.min_players > self.max_players:
            raise ValueError("min_players exceeds max_players")
        return self


class PercentileBand(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: PayoutTier
    percentile: int = Field(ge=1, le=100)
    pool_share: int = Field(ge=0, le=100)


class PayoutStructure(BaseModel):
    """Either a fixed rank -> percent table or a list of percentile bands."""
    model_config = ConfigDict(frozen=True)

    description: str
    ranks: Dict[int, int] = Field(default_factory=dict)
    bands: List[PercentileBand] = Field(default_factory=list)

    @property
    def is_percentile(self) -> bool:
        return bool(self.bands)

    @field_validator("ranks")
    @classmethod
    def _check_ranks(cls, ranks: Dict[int, int]) -> Dict[int, int]:
        for rank, percent in ranks.items():
            if rank < 1:
                raise ValueError(f"rank {rank} must be 1-based")
            if not 0 <= percent <= 100:
                raise ValueError(f"rank {rank} share {percent}% out of range")
        if sum(ranks.values()) > 100:
            raise ValueError(f"rank shares sum to {sum(ranks.values())}%")
        return dict(sorted(ranks.items()))

    @model_validator(mode="after")
    def _check_shape(self):
        if bool(self.ranks) == bool(self.bands):
            raise ValueError("payout structure needs exactly one of ranks or bands")
        if self.bands:
            ceilings = [b.percentile for b in self.bands]
            if any(a >= b for a, b in zip(ceilings, ceilings[1:])):
                raise ValueError("percentile bands must be strictly increasing")
            if ceilings[-1] != 100:
                raise ValueError("last percentile band must end at 100")
            total = sum(b.pool_share for b in self.bands)
            if total > 100:
                raise ValueError(f"band shares sum to {total}%")
        return self


class LedgerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    rpc_url: str = "http://localhost:8000/rpc"
    timeout_seconds: float = Field(default=10.0, gt=0)


DEFAULT_TIERS = [
    TierBand(tier=StakeTier.MICRO, min=10, max=24, level_required=1, icon="💎"),
    TierBand(tier=StakeTier.LOW, min=25, max=49, level_required=5, icon="💎💎"),
    TierBand(tier=StakeTier.MEDIUM, min=50, max=99, level_required=10, icon="💎💎💎"),
    TierBand(tier=StakeTier.HIGH, min=100, max=249, level_required=20, icon="👑"),
    TierBand(tier=StakeTier.ELITE, min=250, max=100_000, level_required=50, icon="👑👑"),
]

DEFAULT_POOL_TYPES = {
    PoolType.HEADS_UP: PoolTypeConfig(house_cut_bps=1000, min_players=2, max_players=2),
    PoolType.MULTI_TABLE: PoolTypeConfig(house_cut_bps=1000, min_players=2, max_players=10),
    PoolType.TOURNAMENT: PoolTypeConfig(house_cut_bps=1200, min_players=6, max_players=1000),
    PoolType.SIT_N_GO: PoolTypeConfig(house_cut_bps=1000, min_players=6, max_players=9),
    PoolType.COMMUNITY_EVENT: PoolTypeConfig(house_cut_bps=1500, min_players=10, max_players=10_000),
}

DEFAULT_PAYOUTS = {
    PoolType.HEADS_UP: PayoutStructure(description="Winner Takes All", ranks={1: 100}),
    PoolType.MULTI_TABLE: PayoutStructure(description="Top 3 Split", ranks={1: 50, 2: 30, 3: 20}),
    PoolType.SIT_N_GO: PayoutStructure(description="Standard SNG", ranks={1: 50, 2: 30, 3: 20}),
    PoolType.TOURNAMENT: PayoutStructure(
        description="Deep Payout", ranks={1: 40, 2: 25, 3: 15, 4: 10, 5: 10}
    ),
    PoolType.COMMUNITY_EVENT: PayoutStructure(
        description="Percentile-Based",
        bands=[
            PercentileBand(tier=PayoutTier.ELITE_1, percentile=1, pool_share=30),
            PercentileBand(tier=PayoutTier.TOP_5, percentile=5, pool_share=20),
            PercentileBand(tier=PayoutTier.TOP_10, percentile=10, pool_share=20),
            PercentileBand(tier=PayoutTier.TOP_25, percentile=25, pool_share=15),
            PercentileBand(tier=PayoutTier.TOP_50, percentile=50, pool_share=10),
            PercentileBand(tier=PayoutTier.PARTICIPANTS, percentile=100, pool_share=5),
        ],
    ),
}


class ArenaConfig(BaseModel):
    """Immutable engine configuration, validated on construction."""
    model_config = ConfigDict(frozen=True)

    tiers: List[TierBand] = Field(default_factory=lambda: list(DEFAULT_TIERS))
    pool_types: Dict[PoolType, PoolTypeConfig] = Field(default_factory=lambda: dict(DEFAULT_POOL_TYPES))
    payouts: Dict[PoolType, PayoutStructure] = Field(default_factory=lambda: dict(DEFAULT_PAYOUTS))
    cooldown_ms: int = Field(default=120_000, ge=0)
    velocity_threshold: int = Field(default=50_000, ge=1)
    min_payout: int = Field(default=1, ge=1)
    hash_prefix: str = Field(default="PXQ", min_length=3, max_length=3)
    standings_page_size: int = Field(default=100, ge=1)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)

    @field_validator("tiers")
    @classmethod
    def _check_tiers(cls, tiers: List[TierBand]) -> List[TierBand]:
        if not tiers:
            raise ValueError("at least one stake tier is required")
        tiers = sorted(tiers, key=lambda band: band.min)
        for lower, upper in zip(tiers, tiers[1:]):
            if upper.min <= lower.max:
                raise ValueError(f"tiers {lower.tier.value} and {upper.tier.value} overlap")
            if upper.min != lower.max + 1:
                raise ValueError(f"gap between tiers {lower.tier.value} and {upper.tier.value}")
        return tiers

    @model_validator(mode="after")
    def _check_structures(self):
        unconfigured = [t.value for t in PoolType if t not in self.pool_types]
        if unconfigured:
            raise ValueError(f"pool types not configured: {', '.join(unconfigured)}")
        missing = [t.value for t in self.pool_types if t not in self.payouts]
        if missing:
            raise ValueError(f"no payout structure for pool types: {', '.join(missing)}")
        return self

    @property
    def min_stake(self) -> int:
        return self.tiers[0].min

    @property
    def max_stake(self) -> int:
        return self.tiers[-1].max

    def house_cut_bps(self, pool_type: PoolType) -> int:
        return self.pool_types[PoolType(pool_type)].house_cut_bps

    def structure(self, pool_type: PoolType) -> PayoutStructure:
        return self.payouts[PoolType(pool_type)]


def get_config_path() -> Optional[str]:
    """Get the config file path from the environment, if any."""
    return os.getenv("ARENA_CONFIG")


TABLE_DEFAULTS = {
    "pool_types": DEFAULT_POOL_TYPES,
    "payouts": DEFAULT_PAYOUTS,
}


def _merge_tables(overrides: dict) -> dict:
    """Lay per-pool-type overrides over the default tables.

    A file may override a single pool type; the others keep their defaults.

    Raises:
        ValueError: If a table is not a mapping or names an unknown pool type
    """
    merged = dict(overrides)
    for key, defaults in TABLE_DEFAULTS.items():
        if key not in overrides:
            continue
        table = overrides[key]
        if not isinstance(table, dict):
            raise ValueError(f"{key} must be a mapping of pool type to settings")
        merged[key] = {**defaults, **{PoolType(name): value for name, value in table.items()}}
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> ArenaConfig:
    """Load and validate configuration.

    Args:
        config_path: YAML file whose top-level keys override the defaults.
            Falls back to ``ARENA_CONFIG`` and then to the built-in tables.

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the file cannot be read or the tables are invalid
    """
    config_path = config_path or get_config_path()
    if not config_path:
        return ArenaConfig()

    try:
        with open(config_path) as f:
            overrides = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"CONFIG_INVALID: cannot read {config_path}: {e}") from e

    if not isinstance(overrides, dict):
        raise ConfigError(f"CONFIG_INVALID: {config_path} must contain a mapping")

    try:
        overrides = _merge_tables(overrides)
        config = ArenaConfig(**overrides)
    except ValueError as e:
        raise ConfigError(f"CONFIG_INVALID: {e}") from e

    logger.debug(f"Loaded arena config from {config_path}")
    return config
