"""Staking vault: atomic stake, refund and settlement.

Every money movement is delegated to the ledger service in a single call.
The checks made here (tier, cooldown, velocity) are pre-flight only; the
ledger's atomic commit stays the source of truth.
"""
import asyncio
import threading
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from .config import ArenaConfig
from .errors import ErrorKind, LedgerCommitFailed, LedgerError, CooldownActive
from .ledger import DistributionLine, LedgerService
from .payouts import PayoutResult
from .rate_guard import VELOCITY_FLAG, RateGuard
from .stake import (
    LEDGER_LAWS,
    STAKE_LAWS,
    EntryStatus,
    HistorySummary,
    ReceiptStatus,
    StakeEntry,
    StakeReceipt,
    UserHistory,
    VaultStats,
    WalletSource,
    calculate_stake_breakdown,
)
from .tiers import TierClassifier


class StakingVault:
    """Stake ledger core. Sole writer of stake entry status."""

    def __init__(
        self,
        ledger: LedgerService,
        config: Optional[ArenaConfig] = None,
        rate_guard: Optional[RateGuard] = None,
        classifier: Optional[TierClassifier] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the vault.

        Args:
            ledger: External ledger performing the atomic commits
            config: Engine configuration (defaults to the built-in tables)
            rate_guard: Cooldown/velocity policy, shared across vaults if needed
            classifier: Tier classifier
            timeout: Default seconds to wait for each ledger call
        """
        if ledger is None:
            raise ValueError("VAULT_ERROR: ledger service required for atomic operations")
        self.ledger = ledger
        self.config = config or ArenaConfig()
        self.rate_guard = rate_guard or RateGuard(
            cooldown_ms=self.config.cooldown_ms,
            velocity_threshold=self.config.velocity_threshold,
        )
        self.classifier = classifier or TierClassifier.from_config(self.config)
        self.timeout = self.config.ledger.timeout_seconds if timeout is None else timeout
        self._entries: Dict[str, StakeEntry] = {}
        self._lock = threading.Lock()

    async def stake(
        self,
        identity: str,
        pool_id: str,
        amount: int,
        wallet_source: WalletSource = WalletSource.PERSONAL,
        bypass_cooldown: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> StakeReceipt:
        """Execute an atomic stake entry with the 25% burn.

        Raises:
            InvalidStakeAmount: Amount outside every tier
            CooldownActive: Identity transacted too recently
            LedgerCommitFailed: Ledger rejected the stake or timed out
        """
        band = self.classifier.classify(amount)
        cooldown = None if bypass_cooldown else self.rate_guard.check_cooldown(identity)

        # Velocity flag wins over the cooldown so large stakes always reach review.
        if self.rate_guard.is_velocity_flagged(amount):
            logger.warning(f"Stake of {amount} by {identity} flagged for admin approval")
            return StakeReceipt(
                success=False,
                status=ReceiptStatus.PENDING_ADMIN_APPROVAL,
                tier=band.tier,
                error_kind=ErrorKind.VELOCITY_FLAGGED,
                error="PENDING_ADMIN_APPROVAL: High-value stake flagged",
                flags=[VELOCITY_FLAG],
                hard_laws_enforced=[VELOCITY_FLAG],
            )

        if cooldown is not None and not cooldown.allowed:
            logger.warning(f"Cooldown active for {identity}: {cooldown.remaining_ms}ms remaining")
            raise CooldownActive(identity, cooldown.remaining_ms)

        breakdown = calculate_stake_breakdown(amount)
        wallet_source = WalletSource(wallet_source)
        commit = await self._commit("stake", self.ledger.atomic_stake(
            identity,
            pool_id,
            breakdown.gross,
            breakdown.burned,
            breakdown.net_to_pool,
            wallet_source,
            metadata or {},
        ), timeout)

        self.rate_guard.record_transaction(identity)
        entry = StakeEntry(
            id=commit.entry_id,
            identity=identity,
            pool_id=pool_id,
            gross=breakdown.gross,
            burn=breakdown.burned,
            pool_contribution=breakdown.net_to_pool,
            wallet_source=wallet_source,
            hash_id=commit.hash_id,
        )
        with self._lock:
            self._entries[entry.id] = entry

        logger.info(f"Stake {commit.hash_id}: {breakdown.formula} by {identity} into {pool_id}")
        return StakeReceipt(
            success=True,
            status=ReceiptStatus.ACTIVE,
            entry_id=commit.entry_id,
            hash_id=commit.hash_id,
            breakdown=breakdown,
            balance_after=commit.balance_after,
            tier=band.tier,
            hard_laws_enforced=list(STAKE_LAWS),
        )

    async def refund(self, entry_id: str, reason: str = "POOL_CANCELLED",
                     timeout: Optional[float] = None) -> StakeReceipt:
        """Refund an entry. Only the pool contribution comes back; burn is permanent."""
        receipt = await self._commit("refund", self.ledger.atomic_refund(entry_id, reason), timeout)
        self._update(entry_id, EntryStatus.REFUNDED, receipt.hash_id)
        logger.info(f"Refunded entry {entry_id} ({reason}): {receipt.hash_id}")
        return StakeReceipt(
            success=True,
            status=ReceiptStatus.REFUNDED,
            entry_id=entry_id,
            hash_id=receipt.hash_id,
            balance_after=receipt.balance_after,
            hard_laws_enforced=list(LEDGER_LAWS),
        )

    async def settle(self, entry_id: str, payout_amount: int,
                     timeout: Optional[float] = None) -> StakeReceipt:
        """Credit a computed payout to an entry."""
        if payout_amount < 0:
            raise ValueError(f"payout_amount must be >= 0, got {payout_amount}")
        receipt = await self._commit("settle", self.ledger.atomic_settle(entry_id, payout_amount), timeout)
        self._update(entry_id, EntryStatus.SETTLED, receipt.hash_id, payout_amount=payout_amount)
        logger.info(f"Settled entry {entry_id} with {payout_amount}: {receipt.hash_id}")
        return StakeReceipt(
            success=True,
            status=ReceiptStatus.SETTLED,
            entry_id=entry_id,
            hash_id=receipt.hash_id,
            balance_after=receipt.balance_after,
            hard_laws_enforced=list(LEDGER_LAWS),
        )

    async def distribute(self, pool_id: str, payouts: Sequence[PayoutResult], house_cut: int,
                         timeout: Optional[float] = None) -> int:
        """Commit a whole pool's payouts in one bulk ledger call.

        Returns:
            Total amount distributed
        """
        lines = [
            DistributionLine(identity=p.identity, amount=p.payout_amount,
                             rank=p.rank, percentile=p.percentile)
            for p in payouts
        ]
        await self._commit("distribute", self.ledger.bulk_distribute(pool_id, lines, house_cut), timeout)

        awarded = {p.identity: p.payout_amount for p in payouts}
        with self._lock:
            for entry in list(self._entries.values()):
                if entry.pool_id == pool_id and entry.identity in awarded and entry.status == EntryStatus.ACTIVE:
                    self._entries[entry.id] = entry.with_status(
                        EntryStatus.SETTLED, payout_amount=awarded[entry.identity]
                    )
        return sum(awarded.values())

    def get_entry(self, entry_id: str) -> Optional[StakeEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def active_entries(self, pool_id: str) -> List[StakeEntry]:
        with self._lock:
            return [e for e in self._entries.values()
                    if e.pool_id == pool_id and e.status == EntryStatus.ACTIVE]

    def pool_stats(self, pool_id: str) -> VaultStats:
        """Vault statistics for a pool, from the entries this vault committed."""
        with self._lock:
            entries = [e for e in self._entries.values() if e.pool_id == pool_id]
        if not entries:
            return VaultStats()
        total_staked = sum(e.gross for e in entries)
        return VaultStats(
            total_staked=total_staked,
            total_burned=sum(e.burn for e in entries),
            active_entries=sum(1 for e in entries if e.status == EntryStatus.ACTIVE),
            settled_entries=sum(1 for e in entries if e.status == EntryStatus.SETTLED),
            average_stake=total_staked // len(entries),
            top_stake=max(e.gross for e in entries),
        )

    def user_history(self, identity: str, limit: int = 50) -> UserHistory:
        """A user's entries (newest first) with a staked/won summary.

        ``total_won`` counts the pool contribution of settled entries. It is
        an approximation, not the real payout total.
        """
        with self._lock:
            entries = [e for e in self._entries.values() if e.identity == identity]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        entries = entries[:limit]
        total_staked = sum(e.gross for e in entries)
        total_won = sum(e.pool_contribution for e in entries if e.status == EntryStatus.SETTLED)
        return UserHistory(
            entries=entries,
            summary=HistorySummary(
                total_staked=total_staked,
                total_won=total_won,
                net_result=total_won - total_staked,
            ),
        )

    def _update(self, entry_id: str, status: EntryStatus, hash_id: str, **changes) -> None:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is not None:
                self._entries[entry_id] = entry.with_status(status, hash_id, **changes)

    async def _commit(self, operation: str, call, timeout: Optional[float]):
        """Await one ledger call under a timeout. No retries."""
        timeout = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(call, timeout)
        except LedgerError as e:
            logger.warning(f"Ledger rejected {operation}: {e}")
            raise LedgerCommitFailed(operation, e) from e
        except asyncio.TimeoutError as e:
            logger.warning(f"Ledger {operation} timed out after {timeout}s")
            raise LedgerCommitFailed(operation, LedgerError("TIMEOUT", f"no confirmation after {timeout}s")) from e
