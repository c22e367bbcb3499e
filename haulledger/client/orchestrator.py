"""Transaction orchestration for mutating ledger actions.

Each action runs strictly as sign -> submit -> await finality -> refresh.
Local round state is never changed optimistically: a reported haul only
disappears from the outstanding list once the follow-up refresh reads it
back from the ledger.

Submitted actions run to completion even if the caller stops waiting, so a
dismissed view cannot strand a transaction half-way.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import bittensor as bt

from haulledger.ledger.errors import (
    InvalidAmount,
    MissingCredential,
    SubmissionFailure,
    SyncFailure,
)
from haulledger.ledger.gateway.interface import LedgerGateway
from haulledger.ledger.models import (
    ActionKind,
    HaulSubmission,
    SignedCall,
    TransactionResult,
    TransactionStatus,
)
from haulledger.ledger.signer import CallSigner
from haulledger.ledger.units import to_base_units

from .sync import RoundSynchronizer

HAUL_SUCCESS = "Loot submitted!"
HAUL_FAILURE = "Failed to report loot."
ADVANCE_SUCCESS = "A new round has begun!"
ADVANCE_FAILURE = "Failed to start new round."


@dataclass
class Feedback:
    """User-visible busy/error/success state shared by both actions."""

    pending: set[ActionKind] = field(default_factory=set)
    error: str | None = None
    success: str | None = None
    amount: str = ""

    @property
    def busy(self) -> bool:
        return bool(self.pending)

    @property
    def message(self) -> str | None:
        return self.error or self.success


def _consume_exception(task: asyncio.Future) -> None:
    # The awaiting caller may have gone away; mark the outcome as retrieved.
    if not task.cancelled():
        task.exception()


class TransactionOrchestrator:
    """Drives recordHaul / advanceRound calls through to a refreshed view."""

    def __init__(
        self,
        gateway: LedgerGateway,
        sync: RoundSynchronizer,
        signer: CallSigner | None = None,
    ):
        self.gateway = gateway
        self.sync = sync
        self.signer = signer
        self.feedback = Feedback()
        self.results: dict[ActionKind, TransactionResult] = {
            kind: TransactionResult(kind=kind) for kind in ActionKind
        }

    def is_pending(self, kind: ActionKind) -> bool:
        return kind in self.feedback.pending

    # -- Public actions --

    async def submit_haul(
        self,
        participant: str | None = None,
        amount: str | None = None,
    ) -> TransactionResult:
        """Report a haul for an outstanding participant.

        Defaults to the synchronizer's selected participant and the amount
        held in ``feedback.amount``.

        Raises:
            SubmissionFailure: any precondition, signing, submission or
                finality failure. Outstanding state is left as it was.
        """
        if participant is None and self.sync.selected is not None:
            participant = self.sync.selected.address
        if amount is None:
            amount = self.feedback.amount
        return await self._launch(ActionKind.HAUL, self._haul_flow(participant or "", amount))

    async def advance_round(self) -> TransactionResult:
        """Start a new round once every participant has reported.

        Raises:
            SubmissionFailure: same conditions as ``submit_haul``, plus
                participants still outstanding.
        """
        return await self._launch(ActionKind.ADVANCE, self._advance_flow())

    # -- Flow control --

    async def _launch(self, kind: ActionKind, flow) -> TransactionResult:
        if self.is_pending(kind):
            flow.close()
            raise SubmissionFailure(f"{kind.value} action already in progress")

        self.feedback.error = None
        self.feedback.success = None
        self.feedback.pending.add(kind)
        self.results[kind] = TransactionResult(kind=kind, status=TransactionStatus.PENDING)
        bt.logging.info({"tx_orchestrator": {"action": kind.value, "status": "pending"}})

        task = asyncio.ensure_future(self._run(kind, flow))
        task.add_done_callback(_consume_exception)
        return await asyncio.shield(task)

    async def _run(self, kind: ActionKind, flow) -> TransactionResult:
        fallback = HAUL_FAILURE if kind == ActionKind.HAUL else ADVANCE_FAILURE
        try:
            try:
                tx_hash = await flow
            except SubmissionFailure as e:
                self._fail(kind, str(e) or fallback)
                raise
            except Exception as e:
                self._fail(kind, str(e) or fallback)
                raise SubmissionFailure(str(e) or fallback) from e

            self.results[kind] = TransactionResult(
                kind=kind, status=TransactionStatus.SUCCEEDED, tx_hash=tx_hash,
            )
            if kind == ActionKind.HAUL:
                self.feedback.amount = ""
                self.feedback.success = HAUL_SUCCESS
            else:
                self.feedback.success = ADVANCE_SUCCESS
            bt.logging.info({"tx_orchestrator": {"action": kind.value, "status": "succeeded", "tx_hash": tx_hash}})

            await self._refresh_after(kind)
            return self.results[kind]
        finally:
            self.feedback.pending.discard(kind)

    async def _refresh_after(self, kind: ActionKind) -> None:
        try:
            await self.sync.refresh()
        except SyncFailure as e:
            self.feedback.success = None
            self.feedback.error = str(e)
            bt.logging.warning({"tx_orchestrator": {"action": kind.value, "refresh": "failed"}})

    def _fail(self, kind: ActionKind, reason: str) -> None:
        self.results[kind] = TransactionResult(kind=kind, status=TransactionStatus.FAILED, reason=reason)
        self.feedback.success = None
        self.feedback.error = reason
        bt.logging.error({"tx_orchestrator": {"action": kind.value, "status": "failed", "reason": reason}})

    def _require_signer(self) -> CallSigner:
        if self.signer is None:
            raise MissingCredential("Private key not set")
        return self.signer

    async def _finalize(self, signed: SignedCall) -> str:
        """Submit a signed call and wait for the ledger to confirm it."""
        handle = await self.gateway.submit_transaction(signed)
        bt.logging.debug({"tx_orchestrator": {"submitted": handle.method, "tx_hash": handle.tx_hash}})
        receipt = await self.gateway.wait_for_finality(handle)
        if not receipt.confirmed:
            raise SubmissionFailure(receipt.reason or "Transaction reverted")
        return receipt.tx_hash

    async def _haul_flow(self, participant: str, amount: str) -> str:
        signer = self._require_signer()
        snapshot = self.sync.snapshot
        if snapshot is None or not snapshot.is_outstanding(participant):
            raise SubmissionFailure("Participant not found")
        try:
            base_units = to_base_units(amount)
        except InvalidAmount as e:
            raise SubmissionFailure(str(e)) from e

        submission = HaulSubmission(participant=participant, amount=base_units)
        bt.logging.debug({"tx_orchestrator": {"haul": submission.model_dump()}})
        signed = signer.record_haul(submission.participant, submission.amount)
        return await self._finalize(signed)

    async def _advance_flow(self) -> str:
        signer = self._require_signer()
        if not self.sync.complete:
            raise SubmissionFailure("Not all participants have reported")

        signed = signer.advance_round()
        return await self._finalize(signed)


__all__ = [
    "ADVANCE_FAILURE",
    "ADVANCE_SUCCESS",
    "HAUL_FAILURE",
    "HAUL_SUCCESS",
    "Feedback",
    "TransactionOrchestrator",
]
