"""HTTP transport integration test.

Spins up a real LedgerRPCServer on localhost in front of an InMemoryLedger,
and drives it with the JSONRPCLedgerGateway client: reads, signed
transactions, finality and chart retrieval over the wire.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from haulledger.client.decoder import ArtifactDecoder
from haulledger.ledger.errors import GatewayError
from haulledger.ledger.gateway.http_client import JSONRPCLedgerGateway
from haulledger.ledger.gateway.http_server import LedgerRPCServer
from haulledger.ledger.gateway.memory import InMemoryLedger
from haulledger.ledger.models import Participant, ReceiptStatus
from haulledger.ledger.signer import CallSigner
from haulledger.ledger.units import BASE_UNIT

CONTRACT = "0xC0FFEE"


@pytest.fixture
def operator():
    import bittensor as bt
    return CallSigner(bt.Keypair.create_from_uri("//Alice"), contract=CONTRACT)


def _ledger(operator, **kwargs) -> InMemoryLedger:
    return InMemoryLedger(
        roster=[
            Participant(address="0xA", name="Anne"),
            Participant(address="0xB", name="Bonny"),
        ],
        operators={operator.address},
        contract_address=CONTRACT,
        **kwargs,
    )


@pytest.mark.asyncio
@pytest.mark.integration
class TestHTTPTransport:
    """End-to-end JSON-RPC tests with real server + client."""

    async def test_reads_and_haul_flow(self, operator):
        server = LedgerRPCServer(_ledger(operator), host="127.0.0.1", port=18951)
        try:
            await server.start()
            await asyncio.sleep(0.2)

            client = JSONRPCLedgerGateway("http://127.0.0.1:18951", contract_address=CONTRACT, timeout=10.0)
            try:
                assert await client.get_round() == 0
                outstanding = await client.get_outstanding_participants()
                assert [p.name for p in outstanding] == ["Anne", "Bonny"]

                handle = await client.submit_transaction(operator.record_haul("0xA", 10 * BASE_UNIT))
                assert handle.method == "recordHaul"
                receipt = await client.wait_for_finality(handle)
                assert receipt.status == ReceiptStatus.CONFIRMED

                outstanding = await client.get_outstanding_participants()
                assert [p.address for p in outstanding] == ["0xB"]

                totals = {r.participant: r.loot for r in await client.get_loot_totals()}
                # Loot survives as an exact integer despite exceeding 2**53
                assert totals["0xA"] == 10 * BASE_UNIT
            finally:
                await client.close()
        finally:
            await server.stop()

    async def test_reverted_receipt_and_rejected_submit(self, operator):
        server = LedgerRPCServer(_ledger(operator), host="127.0.0.1", port=18952)
        try:
            await server.start()
            await asyncio.sleep(0.2)

            client = JSONRPCLedgerGateway("http://127.0.0.1:18952", contract_address=CONTRACT, timeout=10.0)
            try:
                handle = await client.submit_transaction(operator.advance_round())
                receipt = await client.wait_for_finality(handle)
                assert receipt.status == ReceiptStatus.REVERTED
                assert "not all participants" in receipt.reason

                signed = operator.record_haul("0xA", 1)
                signed.signature = "00" * 64
                with pytest.raises(GatewayError, match="invalid signature"):
                    await client.submit_transaction(signed)
            finally:
                await client.close()
        finally:
            await server.stop()

    async def test_chart_over_the_wire_decodes(self, operator):
        server = LedgerRPCServer(
            _ledger(operator, chart_renderer=lambda records: b"\x89PNG\r\n\x1a\n" + bytes(range(8))),
            host="127.0.0.1", port=18953,
        )
        try:
            await server.start()
            await asyncio.sleep(0.2)

            client = JSONRPCLedgerGateway("http://127.0.0.1:18953", contract_address=CONTRACT, timeout=10.0)
            try:
                raw = await client.generate_chart_artifact()
                assert isinstance(raw, str) and raw.startswith("0x")
                artifact = ArtifactDecoder().decode(raw)
                assert artifact is not None
                assert artifact.data == b"\x89PNG\r\n\x1a\n" + bytes(range(8))
            finally:
                await client.close()
        finally:
            await server.stop()

    async def test_wrong_contract_and_unknown_method(self, operator):
        server = LedgerRPCServer(_ledger(operator), host="127.0.0.1", port=18954)
        try:
            await server.start()
            await asyncio.sleep(0.2)

            client = JSONRPCLedgerGateway("http://127.0.0.1:18954", contract_address="0xOTHER", timeout=10.0)
            try:
                with pytest.raises(GatewayError, match="unknown contract") as exc:
                    await client.get_round()
                assert exc.value.code == -32602
            finally:
                await client.close()

            async with httpx.AsyncClient() as raw:
                resp = await raw.post("http://127.0.0.1:18954/", json={
                    "jsonrpc": "2.0", "id": 7, "method": "ledger_mint", "params": {},
                })
                body = resp.json()
                assert body["id"] == 7
                assert body["error"]["code"] == -32601
        finally:
            await server.stop()


@pytest.mark.asyncio
class TestClientErrors:

    async def test_connection_refused_is_gateway_error(self):
        client = JSONRPCLedgerGateway("http://127.0.0.1:18959", timeout=2.0)
        try:
            with pytest.raises(GatewayError):
                await client.get_round()
        finally:
            await client.close()

    async def test_mismatched_outstanding_arrays(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": 1,
                "result": {"addresses": ["0xA", "0xB"], "names": ["Anne"]},
            })

        client = JSONRPCLedgerGateway(
            "http://ledger.test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        try:
            with pytest.raises(GatewayError, match="2 addresses but 1 names"):
                await client.get_outstanding_participants()
        finally:
            await client.close()

    async def test_http_error_status(self):
        client = JSONRPCLedgerGateway(
            "http://ledger.test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(
                lambda request: httpx.Response(502, text="bad gateway"),
            )),
        )
        try:
            with pytest.raises(GatewayError, match="HTTP 502"):
                await client.get_round()
        finally:
            await client.close()

    async def test_request_carries_contract(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            import json
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": 4})

        client = JSONRPCLedgerGateway(
            "http://ledger.test", contract_address="0xC0",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        try:
            assert await client.get_round() == 4
            assert seen["method"] == "ledger_round"
            assert seen["params"] == {"contract": "0xC0"}
        finally:
            await client.close()
