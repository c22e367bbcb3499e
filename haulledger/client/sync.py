"""Round state sync.

Pulls the current round and the outstanding participant list from the
gateway and replaces them together as one RoundSnapshot. This is the only
writer of round state; everything else reads ``snapshot``.

Nothing is persisted: every load starts from the ledger.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, Union

import bittensor as bt

from haulledger.ledger.errors import SyncFailure
from haulledger.ledger.gateway.interface import LedgerGateway
from haulledger.ledger.models import Participant, RoundSnapshot

SnapshotListener = Callable[[RoundSnapshot], Union[None, Awaitable[None]]]

SYNC_FAILURE_MESSAGE = "Failed to fetch round info."


class RoundSynchronizer:
    """Keeps a local RoundSnapshot in step with the ledger."""

    def __init__(self, gateway: LedgerGateway):
        self.gateway = gateway

        # State
        self.snapshot: RoundSnapshot | None = None
        self.selected: Participant | None = None

        self._listeners: list[SnapshotListener] = []
        self._seq = 0
        self._inflight = 0

    # -- Listeners --

    def add_listener(self, listener: SnapshotListener) -> None:
        """Call ``listener(snapshot)`` after every successful refresh."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    async def _notify(self, snapshot: RoundSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # State is already applied; a listener cannot undo it.
                bt.logging.error({"round_sync": {
                    "listener_failed": getattr(listener, "__qualname__", repr(listener)),
                    "error": str(e),
                }})

    # -- Accessors --

    @property
    def loading(self) -> bool:
        return self._inflight > 0

    @property
    def round(self) -> int:
        return self.snapshot.round if self.snapshot else 0

    @property
    def outstanding(self) -> tuple[Participant, ...]:
        return self.snapshot.outstanding if self.snapshot else ()

    @property
    def complete(self) -> bool:
        """True only once a snapshot has been loaded and nobody is outstanding."""
        return self.snapshot is not None and self.snapshot.complete

    def select(self, address: str) -> Participant:
        """Pick which outstanding participant the next haul is for."""
        participant = self.snapshot.find(address) if self.snapshot else None
        if participant is None:
            raise ValueError(f"{address} has no outstanding haul this round")
        self.selected = participant
        return participant

    # -- Refresh --

    async def refresh(self) -> RoundSnapshot | None:
        """Re-read round and outstanding participants and apply them as a pair.

        Overlapping refreshes resolve in issue order: a result that comes back
        after a newer refresh was started is dropped, and the current snapshot
        (which may still be None) is returned instead.

        Raises:
            SyncFailure: either read failed. Prior state is left untouched.
        """
        seq = self._seq = self._seq + 1
        self._inflight += 1
        try:
            round_no, outstanding = await asyncio.gather(
                self.gateway.get_round(),
                self.gateway.get_outstanding_participants(),
            )
            snapshot = RoundSnapshot(round=round_no, outstanding=tuple(outstanding))
        except Exception as e:
            bt.logging.warning({"round_sync": {"status": "failed", "error": str(e)}})
            raise SyncFailure(SYNC_FAILURE_MESSAGE) from e
        finally:
            self._inflight -= 1

        if seq != self._seq:
            # A newer refresh was issued while this one was reading.
            bt.logging.debug({"round_sync": {"stale_result_dropped": seq, "latest": self._seq}})
            return self.snapshot

        self._apply(snapshot)
        await self._notify(snapshot)
        return snapshot

    def _apply(self, snapshot: RoundSnapshot) -> None:
        previous = self.snapshot
        if previous is not None and snapshot.round < previous.round:
            # Ledger is authoritative; flag but accept.
            bt.logging.warning({"round_sync": {
                "round_regressed": {"from": previous.round, "to": snapshot.round},
            }})

        self.snapshot = snapshot
        self.selected = snapshot.outstanding[0] if snapshot.outstanding else None

        if previous is None or previous != snapshot:
            bt.logging.info({"round_sync": {
                "round": snapshot.round,
                "outstanding": len(snapshot.outstanding),
                "complete": snapshot.complete,
            }})
        else:
            bt.logging.debug({"round_sync": "unchanged"})


__all__ = ["SYNC_FAILURE_MESSAGE", "RoundSynchronizer", "SnapshotListener"]
