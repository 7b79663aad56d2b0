"""JSON-RPC ledger client."""
import itertools
import json
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger
from pydantic import ValidationError

from .errors import LedgerError
from .ledger import DistributionLine, LedgerReceipt, LedgerService, StakeCommit
from .stake import WalletSource


class RpcLedger(LedgerService):
    """Ledger service reached over JSON-RPC 2.0.

    Each operation maps to one database function on the ledger side, which
    performs the debit/credit in a single transaction.
    """

    def __init__(self, rpc_url: str, headers: Optional[Dict[str, str]] = None):
        self.rpc_url = rpc_url
        self.headers = headers or {}
        self._ids = itertools.count(1)

    async def atomic_stake(self, identity, pool_id, gross, burn, pool_contribution,
                           wallet_source, metadata=None) -> StakeCommit:
        result = await self._call("fn_atomic_stake_entry", {
            "p_user_id": identity,
            "p_pool_id": pool_id,
            "p_gross_stake": gross,
            "p_burn_amount": burn,
            "p_pool_contribution": pool_contribution,
            "p_wallet_source": WalletSource(wallet_source).value,
            "p_metadata": metadata or {},
        })
        return self._build(StakeCommit, "fn_atomic_stake_entry", result)

    async def atomic_refund(self, entry_id, reason) -> LedgerReceipt:
        result = await self._call("fn_atomic_stake_refund", {
            "p_entry_id": entry_id,
            "p_reason": reason,
        })
        return self._build(LedgerReceipt, "fn_atomic_stake_refund", result)

    async def atomic_settle(self, entry_id, payout_amount) -> LedgerReceipt:
        result = await self._call("fn_settle_arena_entry", {
            "p_entry_id": entry_id,
            "p_payout_amount": payout_amount,
        })
        return self._build(LedgerReceipt, "fn_settle_arena_entry", result)

    async def bulk_distribute(self, pool_id, payouts: List[DistributionLine], house_cut) -> None:
        await self._call("fn_distribute_arena_prizes", {
            "p_pool_id": pool_id,
            "p_payouts": [
                {"user_id": p.identity, "amount": p.amount, "rank": p.rank, "percentile": p.percentile}
                for p in payouts
            ],
            "p_house_cut": house_cut,
        })

    async def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Make one JSON-RPC call and unwrap its result.

        Raises:
            LedgerError: On transport errors, RPC errors or ``success: false``
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            async with aiohttp.ClientSession(headers=self.headers) as session:
                async with session.post(self.rpc_url, json=payload) as response:
                    body = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise LedgerError("LEDGER_UNREACHABLE", str(e)) from e
        except json.JSONDecodeError as e:
            raise LedgerError("LEDGER_BAD_RESPONSE", str(e)) from e

        return self._unwrap(method, body)

    @staticmethod
    def _build(model, method: str, result: Dict[str, Any]):
        """Read a commit receipt out of a successful result.

        Raises:
            LedgerError: LEDGER_BAD_RESPONSE if receipt fields are missing or malformed
        """
        try:
            return model.model_validate(result)
        except ValidationError as e:
            missing = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            raise LedgerError("LEDGER_BAD_RESPONSE", f"{method} receipt invalid: {missing}") from e

    @staticmethod
    def _unwrap(method: str, body: Any) -> Dict[str, Any]:
        if not isinstance(body, dict):
            raise LedgerError("LEDGER_BAD_RESPONSE", f"{method} returned {type(body).__name__}")
        if "error" in body and body["error"]:
            error = body["error"]
            if isinstance(error, dict):
                raise LedgerError(str(error.get("code", "RPC_ERROR")), error.get("message"))
            raise LedgerError(str(error))

        result = body.get("result")
        # Database functions may return their JSON document as a string.
        if isinstance(result, str):
            try:
                result = json.loads(result)
            except json.JSONDecodeError as e:
                raise LedgerError("LEDGER_BAD_RESPONSE", str(e)) from e
        if not isinstance(result, dict):
            raise LedgerError("LEDGER_BAD_RESPONSE", f"{method} returned no result")
        if result.get("success") is False:
            raise LedgerError(str(result.get("error", "LEDGER_REJECTED")), result.get("status"))

        logger.debug(f"{method} committed: {result.get('hash_id', '-')}")
        return result
