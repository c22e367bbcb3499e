"""Reporting screen: composes sync, orchestration and chart display.

The screen listens to the synchronizer. Whenever a refresh shows an empty
outstanding list it either requests the on-ledger chart and routes it
through the decoder, or (chart flag off) offers the charter link without
touching the decoder.

The screen owns the chart's display handle. The previous handle is released
before a new one is opened, and teardown releases whatever is held. The
chart is fetched in its own task, so a refresh (and the action that
triggered it) never waits on it. Work that completes after teardown is
discarded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

import bittensor as bt

from haulledger.base.config import LedgerConfig
from haulledger.ledger.errors import SubmissionFailure, SyncFailure
from haulledger.ledger.gateway.interface import LedgerGateway
from haulledger.ledger.models import (
    ActionKind,
    Participant,
    RoundSnapshot,
    TransactionResult,
)
from haulledger.ledger.signer import CallSigner

from .decoder import ArtifactDecoder, DisplayHandle
from .orchestrator import TransactionOrchestrator
from .sync import RoundSynchronizer

CLOSED_NOTICE = "The ledger is closed."


class ChartState(str, Enum):
    NONE = "none"  # round still open
    LOADING = "loading"  # waiting for (or failed to get) a valid chart
    READY = "ready"
    LINK = "link"  # on-ledger chart disabled; offer the charter page


@dataclass
class ScreenView:
    """Snapshot of everything the screen would render."""

    closed: bool = False
    notice: str | None = None
    round: int = 0
    outstanding: list[Participant] = field(default_factory=list)
    selected: Participant | None = None
    amount: str = ""
    error: str | None = None
    success: str | None = None
    reporting: bool = False
    advancing: bool = False
    can_report: bool = False
    can_set_sail: bool = False
    chart: ChartState = ChartState.NONE
    chart_uri: str | None = None
    charter_url: str | None = None


class ReportingScreen:
    """View model for the haul reporting screen."""

    def __init__(
        self,
        config: LedgerConfig,
        gateway: LedgerGateway,
        signer: CallSigner | None = None,
        decoder: ArtifactDecoder | None = None,
    ):
        self.config = config
        self.gateway = gateway
        self.decoder = decoder or ArtifactDecoder()
        self.sync = RoundSynchronizer(gateway)
        self.orchestrator = TransactionOrchestrator(gateway, self.sync, signer)

        self._generation = 0
        self._handle: DisplayHandle | None = None
        self._chart_task: asyncio.Task | None = None
        if not self.closed:
            self.sync.add_listener(self._on_snapshot)

    @property
    def closed(self) -> bool:
        return not self.config.ledger_open

    @property
    def feedback(self):
        return self.orchestrator.feedback

    @property
    def chart_handle(self) -> DisplayHandle | None:
        return self._handle

    @property
    def chart_task(self) -> asyncio.Task | None:
        """The chart load in flight (or last finished), if any."""
        return self._chart_task

    # -- Loading --

    async def load(self) -> ScreenView:
        """Initial load. A closed screen makes no gateway calls."""
        if self.closed:
            return self.view()
        self.feedback.error = None
        try:
            await self.sync.refresh()
        except SyncFailure as e:
            self.feedback.error = str(e)
        if self._chart_task is not None:
            # Initial render waits for the chart; cancellation by teardown is fine.
            await asyncio.wait({self._chart_task})
        return self.view()

    def _on_snapshot(self, snapshot: RoundSnapshot) -> None:
        self._cancel_chart_load()
        if not snapshot.complete or not self.config.onchain_chart:
            self._release_chart()
            return
        # Runs apart from the refresh so actions are not held pending on it.
        self._chart_task = asyncio.ensure_future(self._load_chart())

    def _cancel_chart_load(self) -> None:
        if self._chart_task is not None and not self._chart_task.done():
            self._chart_task.cancel()

    async def _load_chart(self) -> None:
        generation = self._generation
        try:
            raw = await self.gateway.generate_chart_artifact()
        except Exception as e:
            bt.logging.warning({"reporting_screen": {"chart": "fetch_failed", "error": str(e)}})
            self._release_chart()
            return

        if generation != self._generation:
            bt.logging.debug({"reporting_screen": {"chart": "stale_result_dropped"}})
            return

        artifact = self.decoder.decode(raw)
        if artifact is None:
            self._release_chart()
            return

        try:
            handle = self.decoder.open_display(artifact)
        except OSError as e:
            bt.logging.warning({"reporting_screen": {"chart": "display_failed", "error": str(e)}})
            self._release_chart()
            return

        self._release_chart()
        self._handle = handle
        bt.logging.info({"reporting_screen": {"chart": "ready", "bytes": len(artifact)}})

    def _release_chart(self) -> None:
        if self._handle is not None:
            self._handle.release()
            self._handle = None

    # -- Actions --

    def select(self, address: str) -> Participant:
        return self.sync.select(address)

    def set_amount(self, amount: str) -> None:
        self.feedback.amount = amount

    async def report(
        self,
        amount: str | None = None,
        participant: str | None = None,
    ) -> TransactionResult | None:
        """Report a haul. Failures end up in ``feedback.error``."""
        if self.closed:
            return None
        if amount is not None:
            self.set_amount(amount)
        try:
            return await self.orchestrator.submit_haul(participant)
        except SubmissionFailure:
            return self.orchestrator.results[ActionKind.HAUL]

    async def set_sail(self) -> TransactionResult | None:
        """Advance to the next round. Failures end up in ``feedback.error``."""
        if self.closed:
            return None
        try:
            return await self.orchestrator.advance_round()
        except SubmissionFailure:
            return self.orchestrator.results[ActionKind.ADVANCE]

    # -- Rendering --

    @property
    def can_report(self) -> bool:
        return (
            not self.closed
            and not self.orchestrator.is_pending(ActionKind.HAUL)
            and not self.sync.loading
            and bool(self.feedback.amount)
            and bool(self.sync.outstanding)
            and self.sync.selected is not None
        )

    @property
    def can_set_sail(self) -> bool:
        return (
            not self.closed
            and not self.orchestrator.is_pending(ActionKind.ADVANCE)
            and not self.sync.loading
            and self.sync.complete
        )

    def _chart_state(self) -> ChartState:
        if not self.sync.complete:
            return ChartState.NONE
        if not self.config.onchain_chart:
            return ChartState.LINK
        return ChartState.READY if self._handle is not None else ChartState.LOADING

    def view(self) -> ScreenView:
        if self.closed:
            return ScreenView(closed=True, notice=CLOSED_NOTICE)

        chart = self._chart_state()
        return ScreenView(
            round=self.sync.round,
            outstanding=list(self.sync.outstanding),
            selected=self.sync.selected,
            amount=self.feedback.amount,
            error=self.feedback.error,
            success=self.feedback.success,
            reporting=self.orchestrator.is_pending(ActionKind.HAUL),
            advancing=self.orchestrator.is_pending(ActionKind.ADVANCE),
            can_report=self.can_report,
            can_set_sail=self.can_set_sail,
            chart=chart,
            chart_uri=self._handle.uri if chart == ChartState.READY else None,
            charter_url=self.config.charter_url if chart == ChartState.LINK else None,
        )

    # -- Teardown --

    def teardown(self) -> None:
        """Dismiss the screen. In-flight actions still finish on the ledger."""
        self._generation += 1
        self.sync.remove_listener(self._on_snapshot)
        self._cancel_chart_load()
        self._release_chart()


__all__ = ["CLOSED_NOTICE", "ChartState", "ReportingScreen", "ScreenView"]
