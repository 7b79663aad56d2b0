"""Stake records and the burn split."""
import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import StakeTier
from .errors import ErrorKind

# Hard law: a quarter of every stake is destroyed. Not configurable.
BURN_RATE_PERCENT = 25

HASH_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
HASH_BODY_LENGTH = 13

STAKE_LAWS = ["IMMUTABLE_LEDGER", "25_PERCENT_BURN", "TRIPLE_WALLET_ISOLATION"]
LEDGER_LAWS = ["IMMUTABLE_LEDGER"]


class WalletSource(str, Enum):
    PERSONAL = "PERSONAL"
    STAKED = "STAKED"
    MAKEUP = "MAKEUP"


class EntryStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SETTLED = "SETTLED"
    REFUNDED = "REFUNDED"
    VOID = "VOID"


class ReceiptStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REFUNDED = "REFUNDED"
    SETTLED = "SETTLED"
    PENDING_ADMIN_APPROVAL = "PENDING_ADMIN_APPROVAL"


def burn_amount(gross: int) -> int:
    return gross * BURN_RATE_PERCENT // 100


class StakeBreakdown(BaseModel):
    """Gross stake split into burn and pool contribution."""
    model_config = ConfigDict(frozen=True)

    gross: int
    burned: int
    net_to_pool: int
    burn_rate: str = f"{BURN_RATE_PERCENT}%"
    formula: str = ""


def calculate_stake_breakdown(amount: int) -> StakeBreakdown:
    """Calculate the burn split for a stake (also used for client previews)."""
    burned = burn_amount(amount)
    net_to_pool = amount - burned
    return StakeBreakdown(
        gross=amount,
        burned=burned,
        net_to_pool=net_to_pool,
        formula=f"{amount}💎 = {burned}🔥 (burn) + {net_to_pool}🏆 (pool)",
    )


def generate_hash_id(prefix: str = "PXQ") -> str:
    """Generate a display-only receipt id.

    Real commits always carry the ledger's own hash id; this is for previews
    and the in-memory ledger.
    """
    return prefix + "".join(secrets.choice(HASH_ALPHABET) for _ in range(HASH_BODY_LENGTH))


class StakeEntry(BaseModel):
    """One user's committed stake into one pool."""
    model_config = ConfigDict(frozen=True)

    id: str
    identity: str
    pool_id: str
    gross: int
    burn: int
    pool_contribution: int
    status: EntryStatus = EntryStatus.ACTIVE
    wallet_source: WalletSource = WalletSource.PERSONAL
    hash_id: Optional[str] = None
    payout_amount: Optional[int] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    settled_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_split(self):
        if self.gross != self.burn + self.pool_contribution:
            raise ValueError("gross must equal burn + pool_contribution")
        if self.burn != burn_amount(self.gross):
            raise ValueError(f"burn must be {BURN_RATE_PERCENT}% of gross, rounded down")
        return self

    def with_status(self, status: EntryStatus, hash_id: Optional[str] = None, **changes) -> "StakeEntry":
        """Return a copy carrying the new status and ledger receipt.

        ``settled_at`` is only stamped when the entry becomes SETTLED.
        """
        update: Dict[str, Any] = {"status": status}
        if status == EntryStatus.SETTLED:
            update["settled_at"] = datetime.now(timezone.utc)
        update.update(changes)
        if hash_id is not None:
            update["hash_id"] = hash_id
        return self.model_copy(update=update)


class StakeReceipt(BaseModel):
    """Result of a stake, refund or settle call."""
    success: bool
    status: ReceiptStatus
    entry_id: Optional[str] = None
    hash_id: Optional[str] = None
    breakdown: Optional[StakeBreakdown] = None
    balance_after: Optional[int] = None
    tier: Optional[StakeTier] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    flags: List[str] = Field(default_factory=list)
    hard_laws_enforced: List[str] = Field(default_factory=list)


class VaultStats(BaseModel):
    total_staked: int = 0
    total_burned: int = 0
    active_entries: int = 0
    settled_entries: int = 0
    average_stake: int = 0
    top_stake: int = 0


class HistorySummary(BaseModel):
    total_staked: int = 0
    total_won: int = 0
    net_result: int = 0


class UserHistory(BaseModel):
    entries: List[StakeEntry] = Field(default_factory=list)
    summary: HistorySummary = Field(default_factory=HistorySummary)
