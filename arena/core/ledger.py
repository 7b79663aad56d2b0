"""Ledger service contract and an in-memory implementation."""
import asyncio
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel

from .errors import LedgerError
from .pools import InMemoryPoolRegistry
from .stake import EntryStatus, StakeEntry, WalletSource, generate_hash_id


class StakeCommit(BaseModel):
    entry_id: str
    hash_id: str
    balance_after: int


class LedgerReceipt(BaseModel):
    hash_id: str
    balance_after: int


class DistributionLine(BaseModel):
    identity: str
    amount: int
    rank: int
    percentile: int


class LedgerService(ABC):
    """Durable ledger that performs the actual debit/credit atomically.

    Implementations raise :class:`LedgerError` to reject an operation.
    Receipt ids come back unmodified to the caller.
    """

    @abstractmethod
    async def atomic_stake(
        self,
        identity: str,
        pool_id: str,
        gross: int,
        burn: int,
        pool_contribution: int,
        wallet_source: WalletSource,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StakeCommit:
        pass

    @abstractmethod
    async def atomic_refund(self, entry_id: str, reason: str) -> LedgerReceipt:
        pass

    @abstractmethod
    async def atomic_settle(self, entry_id: str, payout_amount: int) -> LedgerReceipt:
        pass

    @abstractmethod
    async def bulk_distribute(self, pool_id: str, payouts: List[DistributionLine], house_cut: int) -> None:
        pass


@dataclass
class LedgerTransaction:
    """Append-only transaction log row."""
    kind: str  # DEBIT or CREDIT
    source: str
    amount: int
    identity: Optional[str]
    wallet: Optional[WalletSource]
    hash_id: str
    reference: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryLedger(LedgerService):
    """Process-local ledger with the same rejection rules as the database.

    Balances are held per (identity, wallet) so the three wallets never mix.
    """

    def __init__(
        self,
        registry: Optional[InMemoryPoolRegistry] = None,
        hash_prefix: str = "PXQ",
        latency: float = 0.0,
    ):
        self.registry = registry
        self.hash_prefix = hash_prefix
        self.latency = latency
        self.entries: Dict[str, StakeEntry] = {}
        self.transactions: List[LedgerTransaction] = []
        self.total_burned = 0
        self._balances: Dict[Tuple[str, WalletSource], int] = {}
        self._distributed: set = set()
        self._failures: Dict[str, str] = {}
        self._lock = threading.Lock()

    def fund(self, identity: str, amount: int, wallet: WalletSource = WalletSource.PERSONAL) -> int:
        """Credit a wallet directly (test and simulation setup)."""
        with self._lock:
            key = (identity, WalletSource(wallet))
            self._balances[key] = self._balances.get(key, 0) + amount
            return self._balances[key]

    def balance(self, identity: str, wallet: WalletSource = WalletSource.PERSONAL) -> Optional[int]:
        with self._lock:
            return self._balances.get((identity, WalletSource(wallet)))

    def fail_next(self, operation: str, code: str = "LEDGER_UNAVAILABLE") -> None:
        """Make the next call of ``operation`` raise LedgerError(code)."""
        self._failures[operation] = code

    async def atomic_stake(self, identity, pool_id, gross, burn, pool_contribution,
                           wallet_source, metadata=None) -> StakeCommit:
        await self._before("atomic_stake")
        wallet = WalletSource(wallet_source)
        with self._lock:
            if any(e.pool_id == pool_id and e.identity == identity for e in self.entries.values()):
                raise LedgerError("ALREADY_ENTERED")
            key = (identity, wallet)
            current = self._balances.get(key)
            if current is None:
                raise LedgerError("WALLET_NOT_FOUND", f"{identity}/{wallet.value}")
            if current < gross:
                raise LedgerError("INSUFFICIENT_BALANCE", f"required {gross}, available {current}")
            if self.registry is not None:
                self.registry.apply_stake(pool_id, pool_contribution, burn)

            self._balances[key] = current - gross
            hash_id = generate_hash_id(self.hash_prefix)
            entry = StakeEntry(
                id=str(uuid.uuid4()),
                identity=identity,
                pool_id=pool_id,
                gross=gross,
                burn=burn,
                pool_contribution=pool_contribution,
                wallet_source=wallet,
                hash_id=hash_id,
            )
            self.entries[entry.id] = entry
            self.total_burned += burn
            self._log("DEBIT", "ARENA_STAKE", gross, identity, wallet, hash_id, entry.id, metadata or {})
            return StakeCommit(entry_id=entry.id, hash_id=hash_id, balance_after=self._balances[key])

    async def atomic_refund(self, entry_id, reason) -> LedgerReceipt:
        await self._before("atomic_refund")
        with self._lock:
            entry = self._active_entry(entry_id, "ENTRY_NOT_REFUNDABLE")
            key = (entry.identity, entry.wallet_source)
            self._balances[key] = self._balances.get(key, 0) + entry.pool_contribution
            hash_id = generate_hash_id(self.hash_prefix)
            self.entries[entry_id] = entry.with_status(EntryStatus.REFUNDED, hash_id)
            if self.registry is not None:
                self.registry.apply_refund(entry.pool_id, entry.pool_contribution)
            self._log("CREDIT", "ARENA_REFUND", entry.pool_contribution, entry.identity,
                      entry.wallet_source, hash_id, entry_id,
                      {"reason": reason, "original_stake": entry.gross, "burn_retained": entry.burn})
            return LedgerReceipt(hash_id=hash_id, balance_after=self._balances[key])

    async def atomic_settle(self, entry_id, payout_amount) -> LedgerReceipt:
        await self._before("atomic_settle")
        with self._lock:
            return self._settle(entry_id, payout_amount)

    async def bulk_distribute(self, pool_id, payouts, house_cut) -> None:
        await self._before("bulk_distribute")
        with self._lock:
            if pool_id in self._distributed:
                raise LedgerError("ALREADY_DISTRIBUTED", pool_id)
            by_identity = {
                e.identity: e for e in self.entries.values()
                if e.pool_id == pool_id and e.status == EntryStatus.ACTIVE
            }
            missing = [line.identity for line in payouts if line.identity not in by_identity]
            if missing:
                raise LedgerError("ENTRY_NOT_FOUND", ", ".join(missing))
            for line in payouts:
                self._settle(by_identity[line.identity].id, line.amount)
            self._log("CREDIT", "ARENA_HOUSE_CUT", house_cut, None, None,
                      generate_hash_id(self.hash_prefix), pool_id)
            self._distributed.add(pool_id)

    def _settle(self, entry_id: str, payout_amount: int) -> LedgerReceipt:
        entry = self._active_entry(entry_id, "ENTRY_ALREADY_SETTLED")
        key = (entry.identity, entry.wallet_source)
        self._balances[key] = self._balances.get(key, 0) + payout_amount
        hash_id = generate_hash_id(self.hash_prefix)
        self.entries[entry_id] = entry.with_status(EntryStatus.SETTLED, hash_id, payout_amount=payout_amount)
        self._log("CREDIT", "ARENA_PAYOUT", payout_amount, entry.identity, entry.wallet_source,
                  hash_id, entry_id)
        return LedgerReceipt(hash_id=hash_id, balance_after=self._balances[key])

    def _active_entry(self, entry_id: str, not_active_code: str) -> StakeEntry:
        entry = self.entries.get(entry_id)
        if entry is None:
            raise LedgerError("ENTRY_NOT_FOUND", entry_id)
        if entry.status != EntryStatus.ACTIVE:
            raise LedgerError(not_active_code, entry.status.value)
        return entry

    def _log(self, kind, source, amount, identity, wallet, hash_id, reference=None, metadata=None):
        self.transactions.append(LedgerTransaction(
            kind=kind, source=source, amount=amount, identity=identity, wallet=wallet,
            hash_id=hash_id, reference=reference, metadata=metadata or {},
        ))

    async def _before(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        code = self._failures.pop(operation, None)
        if code:
            logger.debug(f"Injected ledger failure for {operation}: {code}")
            raise LedgerError(code)
