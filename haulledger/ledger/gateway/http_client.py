"""JSON-RPC LedgerGateway client.

Talks JSON-RPC 2.0 over HTTP to a ledger node. Every request carries the
ledger contract address so the node can reject calls meant for another
ledger. No retries: a failed call surfaces immediately as GatewayError.
"""

from __future__ import annotations

import itertools
from typing import Any

import bittensor as bt
import httpx

from haulledger.ledger.errors import GatewayError
from haulledger.ledger.models import (
    LootRecord,
    Participant,
    SignedCall,
    TransactionHandle,
    TransactionReceipt,
)


class JSONRPCLedgerGateway:
    """Client-side gateway for a ledger node's JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def close(self) -> None:
        await self._client.aclose()

    # -- Transport --

    async def _rpc(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: httpx.Timeout | float | None = None,
    ) -> Any:
        """Issue one JSON-RPC call and return its ``result``."""
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": {"contract": self.contract_address, **(params or {})},
        }
        kwargs: dict[str, Any] = {"json": body}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._client.post(self.rpc_url, **kwargs)
        except httpx.HTTPError as e:
            bt.logging.warning({"ledger_rpc": {"method": method, "error": str(e)}})
            raise GatewayError(f"{method} failed: {e}") from e

        if resp.status_code != 200:
            raise GatewayError(f"{method} failed: HTTP {resp.status_code} {resp.text}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise GatewayError(f"{method} returned invalid JSON") from e

        error = payload.get("error")
        if error:
            raise GatewayError(error.get("message", "unknown error"), code=error.get("code"))
        if "result" not in payload:
            raise GatewayError(f"{method} returned no result")
        return payload["result"]

    # -- Reads --

    async def get_round(self) -> int:
        return int(await self._rpc("ledger_round"))

    async def get_outstanding_participants(self) -> list[Participant]:
        result = await self._rpc("ledger_outstanding")
        addresses = result.get("addresses", [])
        names = result.get("names", [])
        if len(addresses) != len(names):
            raise GatewayError(
                f"ledger_outstanding returned {len(addresses)} addresses "
                f"but {len(names)} names"
            )
        return [Participant(address=a, name=n) for a, n in zip(addresses, names)]

    async def get_loot_totals(self) -> list[LootRecord]:
        result = await self._rpc("ledger_lootTotals")
        return [
            LootRecord(name=r["name"], participant=r["participant"], loot=int(r["loot"]))
            for r in result
        ]

    async def generate_chart_artifact(self) -> Any:
        # Shape is left untouched; ArtifactDecoder normalises it.
        return await self._rpc("ledger_generateChart")

    # -- Mutations --

    async def submit_transaction(self, signed: SignedCall) -> TransactionHandle:
        result = await self._rpc(
            "ledger_sendTransaction",
            {"transaction": signed.model_dump(mode="json")},
        )
        return TransactionHandle(tx_hash=result["tx_hash"], method=signed.call.method)

    async def wait_for_finality(self, handle: TransactionHandle) -> TransactionReceipt:
        # The node enforces the finality timeout; no client read deadline.
        result = await self._rpc(
            "ledger_awaitFinality",
            {"tx_hash": handle.tx_hash},
            timeout=httpx.Timeout(self._timeout, read=None),
        )
        return TransactionReceipt(**result)


__all__ = ["JSONRPCLedgerGateway"]
