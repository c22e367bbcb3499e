"""Haul ledger data model and gateway layer.

The ledger is the authoritative store of rounds, the participant roster and
every reported haul. This package holds the wire models, call signing, unit
conversion and the gateway implementations used to read and drive it.
"""

from .errors import (
    ArtifactError,
    GatewayError,
    HaulLedgerError,
    HeaderMismatch,
    InvalidAmount,
    MissingCredential,
    SubmissionFailure,
    SyncFailure,
    UnrecognizedFormat,
)
from .models import (
    ActionKind,
    ChartArtifact,
    HaulSubmission,
    LootRecord,
    Participant,
    RoundSnapshot,
    TransactionResult,
    TransactionStatus,
)
from .signer import CallSigner, verify_call
from .units import format_amount, from_base_units, to_base_units

__all__ = [
    "ActionKind",
    "ArtifactError",
    "CallSigner",
    "ChartArtifact",
    "GatewayError",
    "HaulLedgerError",
    "HaulSubmission",
    "HeaderMismatch",
    "InvalidAmount",
    "LootRecord",
    "MissingCredential",
    "Participant",
    "RoundSnapshot",
    "SubmissionFailure",
    "SyncFailure",
    "TransactionResult",
    "TransactionStatus",
    "UnrecognizedFormat",
    "format_amount",
    "from_base_units",
    "to_base_units",
    "verify_call",
]
