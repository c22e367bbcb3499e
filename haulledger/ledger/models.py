"""Pydantic models for the haul ledger.

Round state is read from the ledger as a (round, outstanding) pair and is
only ever replaced as a whole. Mutations travel as signed calls and resolve
into receipts once the ledger reaches finality.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PNG_MAGIC = 0x89
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


# ---------------------------------------------------------------------------
# Roster and round state
# ---------------------------------------------------------------------------


class Participant(BaseModel):
    """A roster member: stable address plus display name."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    name: str

    @property
    def short_address(self) -> str:
        if len(self.address) <= 10:
            return self.address
        return f"{self.address[:6]}...{self.address[-4:]}"

    @property
    def label(self) -> str:
        return f"{self.name} ({self.short_address})"


class RoundSnapshot(BaseModel):
    """Current round number together with who has yet to report in it."""

    model_config = ConfigDict(frozen=True)

    round: int = Field(ge=0)
    outstanding: tuple[Participant, ...] = ()

    @property
    def complete(self) -> bool:
        """True once every participant has reported this round."""
        return not self.outstanding

    def is_outstanding(self, address: str) -> bool:
        return any(p.address == address for p in self.outstanding)

    def find(self, address: str) -> Participant | None:
        for p in self.outstanding:
            if p.address == address:
                return p
        return None


class HaulSubmission(BaseModel):
    """A pending haul: participant address and amount in base units."""

    participant: str = Field(min_length=1)
    amount: int = Field(ge=0)


class LootRecord(BaseModel):
    """Cumulative loot for one participant across all rounds."""

    name: str
    participant: str
    loot: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Chart artifact
# ---------------------------------------------------------------------------


class ChartArtifact(BaseModel):
    """Validated PNG chart bytes."""

    model_config = ConfigDict(frozen=True)

    data: bytes

    def __len__(self) -> int:
        return len(self.data)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class LedgerCall(BaseModel):
    """An unsigned mutating call against the ledger contract."""

    contract: str = ""
    method: str = Field(pattern=r"^(recordHaul|advanceRound)$")
    params: dict[str, Any] = Field(default_factory=dict)
    signer: str
    nonce: str
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SignedCall(BaseModel):
    """A LedgerCall plus the signer's hex signature over its canonical hash."""

    call: LedgerCall
    signature: str


class TransactionHandle(BaseModel):
    """Returned by the gateway once a signed call has been accepted for inclusion."""

    tx_hash: str
    method: str


class ReceiptStatus(str, Enum):
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


class TransactionReceipt(BaseModel):
    """Finality confirmation for a submitted transaction."""

    tx_hash: str
    status: ReceiptStatus
    block: int | None = None
    reason: str = ""

    @property
    def confirmed(self) -> bool:
        return self.status == ReceiptStatus.CONFIRMED


class ActionKind(str, Enum):
    """Mutating actions the client can drive."""

    HAUL = "haul"
    ADVANCE = "advance"


class TransactionStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TransactionResult(BaseModel):
    """Tri-state outcome of one mutating action (plus ``none`` before any)."""

    kind: ActionKind
    status: TransactionStatus = TransactionStatus.NONE
    reason: str = ""
    tx_hash: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == TransactionStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == TransactionStatus.FAILED


__all__ = [
    "PNG_MAGIC",
    "PNG_SIGNATURE",
    "ActionKind",
    "ChartArtifact",
    "HaulSubmission",
    "LedgerCall",
    "LootRecord",
    "Participant",
    "ReceiptStatus",
    "RoundSnapshot",
    "SignedCall",
    "TransactionHandle",
    "TransactionReceipt",
    "TransactionResult",
    "TransactionStatus",
]
