"""LedgerGateway protocol - pluggable transport interface.

Implementations: JSONRPCLedgerGateway (httpx client), InMemoryLedger
(reference ledger used by the development server and tests).
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from haulledger.ledger.models import (
    LootRecord,
    Participant,
    SignedCall,
    TransactionHandle,
    TransactionReceipt,
)


@runtime_checkable
class LedgerGateway(Protocol):
    """Abstract interface for reading and driving the ledger."""

    async def get_round(self) -> int:
        """Current round number."""
        ...

    async def get_outstanding_participants(self) -> list[Participant]:
        """Participants who have not reported a haul this round, in roster order."""
        ...

    async def submit_transaction(self, signed: SignedCall) -> TransactionHandle:
        """Submit a signed ``recordHaul``/``advanceRound`` call."""
        ...

    async def wait_for_finality(self, handle: TransactionHandle) -> TransactionReceipt:
        """Block until the transaction is final. Timeouts are the gateway's own."""
        ...

    async def generate_chart_artifact(self) -> Any:
        """Raw chart bytes as a hex string, byte sequence or integer array."""
        ...

    async def get_loot_totals(self) -> list[LootRecord]:
        """Cumulative loot per participant."""
        ...

    async def close(self) -> None:
        ...


__all__ = ["LedgerGateway"]
