"""JSON-RPC HTTP endpoint serving an InMemoryLedger.

Development node for the haul ledger. Single route:
  POST /  - JSON-RPC 2.0 request

Methods:
  ledger_round            -> int
  ledger_outstanding      -> {"addresses": [...], "names": [...]}
  ledger_lootTotals       -> [{"name", "participant", "loot"}]
  ledger_generateChart    -> "0x..." PNG hex
  ledger_sendTransaction  -> {"tx_hash"}
  ledger_awaitFinality    -> receipt (blocks until final or finality timeout)
"""

from __future__ import annotations

from typing import Any

import bittensor as bt
from aiohttp import web
from pydantic import ValidationError

from haulledger.ledger.errors import GatewayError
from haulledger.ledger.gateway.memory import InMemoryLedger
from haulledger.ledger.models import SignedCall, TransactionHandle

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
LEDGER_ERROR = -32000


def _rpc_error(req_id: Any, code: int, message: str) -> web.Response:
    return web.json_response({
        "jsonrpc": "2.0",
        "id": req_id,
        "error": {"code": code, "message": message},
    })


class LedgerRPCServer:
    """Lightweight async JSON-RPC server in front of an InMemoryLedger."""

    def __init__(
        self,
        ledger: InMemoryLedger,
        host: str = "127.0.0.1",
        port: int = 8545,
    ):
        self.ledger = ledger
        self.host = host
        self.port = port
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._methods = {
            "ledger_round": self._round,
            "ledger_outstanding": self._outstanding,
            "ledger_lootTotals": self._loot_totals,
            "ledger_generateChart": self._generate_chart,
            "ledger_sendTransaction": self._send_transaction,
            "ledger_awaitFinality": self._await_finality,
        }

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/", self._handle_rpc)
        return app

    async def start(self) -> None:
        """Start the HTTP server and the ledger's block producer."""
        await self.ledger.start()
        self._app = self._build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        bt.logging.info({"ledger_rpc_server": {"status": "started", "port": self.port}})

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            bt.logging.info({"ledger_rpc_server": "stopped"})
        await self.ledger.close()

    # -- Dispatch --

    async def _handle_rpc(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except Exception:
            bt.logging.warning({"ledger_rpc_request": {"status": "parse_error"}})
            return _rpc_error(None, PARSE_ERROR, "parse error")

        if not isinstance(body, dict):
            return _rpc_error(None, INVALID_REQUEST, "invalid request")

        req_id = body.get("id")
        method = body.get("method", "")
        params = body.get("params") or {}
        if not isinstance(params, dict):
            return _rpc_error(req_id, INVALID_PARAMS, "params must be an object")
        handler = self._methods.get(method)
        if handler is None:
            bt.logging.info({"ledger_rpc_request": {"method": method, "status": "not_found"}})
            return _rpc_error(req_id, METHOD_NOT_FOUND, f"method not found: {method}")

        contract = params.get("contract", "")
        if self.ledger.contract_address and contract and contract != self.ledger.contract_address:
            return _rpc_error(req_id, INVALID_PARAMS, f"unknown contract {contract}")

        try:
            result = await handler(params)
        except (KeyError, ValidationError) as e:
            bt.logging.info({"ledger_rpc_request": {"method": method, "status": "invalid_params"}})
            return _rpc_error(req_id, INVALID_PARAMS, f"invalid params: {e}")
        except GatewayError as e:
            bt.logging.info({"ledger_rpc_request": {"method": method, "status": "error", "error": str(e)}})
            return _rpc_error(req_id, LEDGER_ERROR, str(e))

        bt.logging.debug({"ledger_rpc_request": {"method": method, "status": "ok"}})
        return web.json_response({"jsonrpc": "2.0", "id": req_id, "result": result})

    # -- Methods --

    async def _round(self, params: dict) -> int:
        return await self.ledger.get_round()

    async def _outstanding(self, params: dict) -> dict:
        participants = await self.ledger.get_outstanding_participants()
        return {
            "addresses": [p.address for p in participants],
            "names": [p.name for p in participants],
        }

    async def _loot_totals(self, params: dict) -> list[dict]:
        records = await self.ledger.get_loot_totals()
        return [
            {"name": r.name, "participant": r.participant, "loot": str(r.loot)}
            for r in records
        ]

    async def _generate_chart(self, params: dict) -> str:
        return await self.ledger.generate_chart_artifact()

    async def _send_transaction(self, params: dict) -> dict:
        signed = SignedCall(**params["transaction"])
        handle = await self.ledger.submit_transaction(signed)
        return {"tx_hash": handle.tx_hash}

    async def _await_finality(self, params: dict) -> dict:
        handle = TransactionHandle(tx_hash=params["tx_hash"], method="")
        receipt = await self.ledger.wait_for_finality(handle)
        return receipt.model_dump(mode="json")


__all__ = ["LedgerRPCServer"]
