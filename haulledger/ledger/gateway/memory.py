"""In-memory ledger implementing the LedgerGateway protocol.

Reference state machine for local development and tests:
  - a fixed roster; round starts at 0
  - recordHaul: participant must be on the roster and not yet reported
  - advanceRound: operator only, and only once everyone has reported
  - transactions are signature-checked, queued, and applied when the next
    block is produced; receipts record confirmed/reverted outcomes

With ``block_time=None`` every submitted transaction is mined into its own
block immediately. Otherwise ``start()`` runs a block producer task.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable

import bittensor as bt

from haulledger.ledger.chart import render_chart
from haulledger.ledger.errors import GatewayError
from haulledger.ledger.models import (
    LootRecord,
    Participant,
    ReceiptStatus,
    SignedCall,
    TransactionHandle,
    TransactionReceipt,
)
from haulledger.ledger.signer import transaction_hash, verify_call


class _Revert(Exception):
    """A transaction violated a ledger rule."""


@dataclass
class _PendingTx:
    tx_hash: str
    signed: SignedCall
    final: asyncio.Event = field(default_factory=asyncio.Event)
    receipt: TransactionReceipt | None = None


class InMemoryLedger:
    """Round/haul ledger held in process memory."""

    def __init__(
        self,
        roster: list[Participant],
        operators: set[str] | None = None,
        contract_address: str = "",
        block_time: float | None = None,
        finality_timeout: float = 60.0,
        verify_signatures: bool = True,
        chart_renderer: Callable[[list[LootRecord]], bytes] = render_chart,
    ):
        addresses = [p.address for p in roster]
        if len(set(addresses)) != len(addresses):
            raise ValueError("roster contains duplicate addresses")

        self.roster = list(roster)
        self.operators = set(operators or ())
        self.contract_address = contract_address
        self.block_time = block_time
        self.finality_timeout = finality_timeout
        self.verify_signatures = verify_signatures
        self._render_chart = chart_renderer

        self.round = 0
        self.block = 0
        self._reported: set[str] = set()
        self._totals: dict[str, int] = {a: 0 for a in addresses}
        self._mempool: list[_PendingTx] = []
        self._txs: dict[str, _PendingTx] = {}
        self._producer: asyncio.Task | None = None

    # -- Block production --

    async def start(self) -> None:
        """Start producing blocks every ``block_time`` seconds."""
        if self.block_time is None or self._producer is not None:
            return
        self._producer = asyncio.create_task(self._produce_loop())
        bt.logging.info({"memory_ledger": {"status": "started", "block_time": self.block_time}})

    async def close(self) -> None:
        if self._producer is not None:
            self._producer.cancel()
            try:
                await self._producer
            except asyncio.CancelledError:
                pass
            self._producer = None

    async def _produce_loop(self) -> None:
        while True:
            await asyncio.sleep(self.block_time)
            self.produce_block()

    def produce_block(self) -> int:
        """Apply every queued transaction in submission order. Returns the block number."""
        self.block += 1
        batch, self._mempool = self._mempool, []
        for tx in batch:
            tx.receipt = self._apply(tx)
            tx.final.set()
        if batch:
            bt.logging.debug({"memory_ledger": {"block": self.block, "txs": len(batch)}})
        return self.block

    # -- Rules --

    def _outstanding(self) -> list[Participant]:
        return [p for p in self.roster if p.address not in self._reported]

    def _require_operator(self, signer: str) -> None:
        if self.operators and signer not in self.operators:
            raise _Revert("signer is not an operator")

    def _apply(self, tx: _PendingTx) -> TransactionReceipt:
        call = tx.signed.call
        try:
            if call.method == "recordHaul":
                self._record_haul(call.signer, call.params)
            elif call.method == "advanceRound":
                self._advance_round(call.signer)
            else:
                raise _Revert(f"unknown method {call.method}")
        except _Revert as e:
            bt.logging.info({"memory_ledger": {"revert": call.method, "reason": str(e)}})
            return TransactionReceipt(
                tx_hash=tx.tx_hash, status=ReceiptStatus.REVERTED,
                block=self.block, reason=str(e),
            )
        return TransactionReceipt(tx_hash=tx.tx_hash, status=ReceiptStatus.CONFIRMED, block=self.block)

    def _record_haul(self, signer: str, params: dict) -> None:
        self._require_operator(signer)
        address = params.get("participant", "")
        try:
            amount = int(params.get("amount", ""))
        except (TypeError, ValueError):
            raise _Revert("amount is not an integer")
        if amount < 0:
            raise _Revert("amount is negative")
        if address not in self._totals:
            raise _Revert("participant is not on the roster")
        if address in self._reported:
            raise _Revert("participant already reported this round")

        self._totals[address] += amount
        self._reported.add(address)

    def _advance_round(self, signer: str) -> None:
        self._require_operator(signer)
        if self._outstanding():
            raise _Revert("not all participants have reported")
        self.round += 1
        self._reported.clear()

    # -- LedgerGateway: reads --

    async def get_round(self) -> int:
        return self.round

    async def get_outstanding_participants(self) -> list[Participant]:
        return self._outstanding()

    async def get_loot_totals(self) -> list[LootRecord]:
        return [
            LootRecord(name=p.name, participant=p.address, loot=self._totals[p.address])
            for p in self.roster
        ]

    async def generate_chart_artifact(self) -> str:
        png = self._render_chart(await self.get_loot_totals())
        return "0x" + png.hex()

    # -- LedgerGateway: mutations --

    async def submit_transaction(self, signed: SignedCall) -> TransactionHandle:
        call = signed.call
        if self.contract_address and call.contract and call.contract != self.contract_address:
            raise GatewayError(f"transaction is for contract {call.contract}")
        if self.verify_signatures and not verify_call(signed):
            raise GatewayError("invalid signature")

        tx_hash = transaction_hash(signed)
        if tx_hash in self._txs:
            raise GatewayError("transaction already submitted")

        tx = _PendingTx(tx_hash=tx_hash, signed=signed)
        self._txs[tx_hash] = tx
        self._mempool.append(tx)
        bt.logging.debug({"memory_ledger": {"queued": call.method, "tx_hash": tx_hash[:18]}})

        if self.block_time is None:
            self.produce_block()
        return TransactionHandle(tx_hash=tx_hash, method=call.method)

    async def wait_for_finality(self, handle: TransactionHandle) -> TransactionReceipt:
        tx = self._txs.get(handle.tx_hash)
        if tx is None:
            raise GatewayError(f"unknown transaction {handle.tx_hash}")
        try:
            await asyncio.wait_for(tx.final.wait(), timeout=self.finality_timeout)
        except asyncio.TimeoutError:
            raise GatewayError(f"finality timeout after {self.finality_timeout}s")
        return tx.receipt


__all__ = ["InMemoryLedger"]
