"""Tests for transaction orchestration against the in-memory ledger."""

import asyncio

import pytest
import pytest_asyncio

from haulledger.client.orchestrator import (
    ADVANCE_SUCCESS,
    HAUL_SUCCESS,
    TransactionOrchestrator,
)
from haulledger.client.sync import SYNC_FAILURE_MESSAGE, RoundSynchronizer
from haulledger.ledger.errors import GatewayError, SubmissionFailure
from haulledger.ledger.gateway.memory import InMemoryLedger
from haulledger.ledger.models import ActionKind, Participant, TransactionStatus
from haulledger.ledger.signer import CallSigner
from haulledger.ledger.units import BASE_UNIT

CONTRACT = "0xLEDGER"
A = Participant(address="0xA", name="Anne")
B = Participant(address="0xB", name="Bonny")


class RecordingLedger(InMemoryLedger):
    """In-memory ledger that counts mutations and can hold finality open."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.submitted = []
        self.gate: asyncio.Event | None = None
        self.fail_reads = False

    async def submit_transaction(self, signed):
        self.submitted.append(signed.call.method)
        return await super().submit_transaction(signed)

    async def wait_for_finality(self, handle):
        if self.gate is not None:
            await self.gate.wait()
        return await super().wait_for_finality(handle)

    async def get_round(self):
        if self.fail_reads:
            raise GatewayError("rpc down")
        return await super().get_round()


@pytest.fixture
def operator():
    import bittensor as bt
    return CallSigner(bt.Keypair.create_from_uri("//Alice"), contract=CONTRACT)


@pytest.fixture
def ledger(operator):
    return RecordingLedger(
        roster=[A, B],
        operators={operator.address},
        contract_address=CONTRACT,
        chart_renderer=lambda records: b"\x89PNG",
    )


@pytest_asyncio.fixture
async def orchestrator(ledger, operator):
    sync = RoundSynchronizer(ledger)
    await sync.refresh()
    return TransactionOrchestrator(ledger, sync, operator)


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0)


class TestSubmitHaul:

    @pytest.mark.asyncio
    async def test_success_refreshes_and_clears_amount(self, orchestrator, ledger):
        orchestrator.feedback.amount = "10"
        result = await orchestrator.submit_haul("0xA")

        assert result.status == TransactionStatus.SUCCEEDED
        assert result.tx_hash.startswith("0x")
        assert orchestrator.feedback.amount == ""
        assert orchestrator.feedback.success == HAUL_SUCCESS
        assert orchestrator.feedback.error is None
        assert not orchestrator.feedback.busy
        assert orchestrator.sync.outstanding == (B,)
        totals = {r.participant: r.loot for r in await ledger.get_loot_totals()}
        assert totals["0xA"] == 10 * BASE_UNIT

    @pytest.mark.asyncio
    async def test_defaults_to_selected_participant(self, orchestrator):
        orchestrator.sync.select("0xB")
        result = await orchestrator.submit_haul(amount="1.5")
        assert result.succeeded
        assert orchestrator.sync.outstanding == (A,)

    @pytest.mark.asyncio
    async def test_ineligible_participant_never_submits(self, orchestrator, ledger):
        await orchestrator.submit_haul("0xA", "1")
        with pytest.raises(SubmissionFailure, match="Participant not found"):
            await orchestrator.submit_haul("0xA", "1")
        assert ledger.submitted == ["recordHaul"]
        assert orchestrator.results[ActionKind.HAUL].failed
        assert orchestrator.feedback.error == "Participant not found"
        assert orchestrator.feedback.success is None

    @pytest.mark.asyncio
    async def test_missing_signer(self, ledger):
        sync = RoundSynchronizer(ledger)
        await sync.refresh()
        orchestrator = TransactionOrchestrator(ledger, sync)
        with pytest.raises(SubmissionFailure, match="Private key not set"):
            await orchestrator.submit_haul("0xA", "1")
        assert ledger.submitted == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["", "abc", "-1", "1.0000000000000000001"])
    async def test_bad_amount_rejected_before_signing(self, orchestrator, ledger, amount):
        orchestrator.feedback.amount = amount
        with pytest.raises(SubmissionFailure):
            await orchestrator.submit_haul("0xA")
        assert ledger.submitted == []
        assert orchestrator.feedback.amount == amount
        assert orchestrator.sync.outstanding == (A, B)

    @pytest.mark.asyncio
    async def test_reverted_receipt_leaves_state(self, ledger):
        import bittensor as bt
        outsider = CallSigner(bt.Keypair.create_from_uri("//Bob"), contract=CONTRACT)
        sync = RoundSynchronizer(ledger)
        await sync.refresh()
        orchestrator = TransactionOrchestrator(ledger, sync, outsider)
        orchestrator.feedback.amount = "3"

        with pytest.raises(SubmissionFailure, match="not an operator"):
            await orchestrator.submit_haul("0xA")

        assert ledger.submitted == ["recordHaul"]
        assert orchestrator.results[ActionKind.HAUL].reason == "signer is not an operator"
        assert orchestrator.feedback.amount == "3"
        assert sync.outstanding == (A, B)

    @pytest.mark.asyncio
    async def test_refresh_failure_after_success(self, orchestrator, ledger):
        ledger.fail_reads = True
        result = await orchestrator.submit_haul("0xA", "1")
        assert result.succeeded
        assert orchestrator.feedback.success is None
        assert orchestrator.feedback.error == SYNC_FAILURE_MESSAGE
        # Local state is only updated from a successful read
        assert orchestrator.sync.outstanding == (A, B)


class TestReentrancy:

    @pytest.mark.asyncio
    async def test_second_haul_rejected_while_pending(self, orchestrator, ledger):
        ledger.gate = asyncio.Event()
        first = asyncio.create_task(orchestrator.submit_haul("0xA", "1"))
        await _wait_until(lambda: ledger.submitted)

        assert orchestrator.is_pending(ActionKind.HAUL)
        assert orchestrator.feedback.busy
        with pytest.raises(SubmissionFailure, match="already in progress"):
            await orchestrator.submit_haul("0xB", "1")

        ledger.gate.set()
        result = await first
        assert result.succeeded
        assert ledger.submitted == ["recordHaul"]
        assert not orchestrator.is_pending(ActionKind.HAUL)

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_transaction(self, orchestrator, ledger):
        ledger.gate = asyncio.Event()
        caller = asyncio.create_task(orchestrator.submit_haul("0xA", "1"))
        await _wait_until(lambda: ledger.submitted)

        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        ledger.gate.set()
        await _wait_until(lambda: not orchestrator.is_pending(ActionKind.HAUL))
        assert orchestrator.results[ActionKind.HAUL].succeeded
        assert orchestrator.sync.outstanding == (B,)


class TestAdvanceRound:

    @pytest.mark.asyncio
    async def test_rejected_while_participants_outstanding(self, orchestrator, ledger):
        with pytest.raises(SubmissionFailure, match="Not all participants have reported"):
            await orchestrator.advance_round()
        assert ledger.submitted == []
        assert orchestrator.results[ActionKind.ADVANCE].failed

    @pytest.mark.asyncio
    async def test_rejected_before_first_refresh(self, ledger, operator):
        orchestrator = TransactionOrchestrator(ledger, RoundSynchronizer(ledger), operator)
        with pytest.raises(SubmissionFailure):
            await orchestrator.advance_round()
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_advance_increments_round_and_resets_roster(self, orchestrator, ledger):
        await orchestrator.submit_haul("0xA", "1")
        await orchestrator.submit_haul("0xB", "2")
        assert orchestrator.sync.complete

        result = await orchestrator.advance_round()
        assert result.succeeded
        assert orchestrator.feedback.success == ADVANCE_SUCCESS
        assert orchestrator.sync.round == 1
        assert orchestrator.sync.outstanding == (A, B)
        assert orchestrator.sync.selected == A


class TestRoundScenario:

    @pytest.mark.asyncio
    async def test_round_three_report_both_then_sail(self, ledger, operator):
        ledger.round = 3
        sync = RoundSynchronizer(ledger)
        await sync.refresh()
        orchestrator = TransactionOrchestrator(ledger, sync, operator)
        assert sync.round == 3
        assert sync.outstanding == (A, B)

        await orchestrator.submit_haul("0xA", "10")
        assert sync.round == 3
        assert sync.outstanding == (B,)
        assert sync.selected == B

        await orchestrator.submit_haul(amount="2.5")
        assert sync.complete

        await orchestrator.advance_round()
        assert sync.round == 4
        assert sync.outstanding == (A, B)

        totals = {r.participant: r.loot for r in await ledger.get_loot_totals()}
        assert totals == {"0xA": 10 * BASE_UNIT, "0xB": 25 * BASE_UNIT // 10}
        assert ledger.submitted == ["recordHaul", "recordHaul", "advanceRound"]
