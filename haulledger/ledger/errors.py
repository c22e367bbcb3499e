"""Exception taxonomy for the haul ledger client.

Read failures surface as SyncFailure, mutating-action failures as
SubmissionFailure. Artifact errors only ever suppress the chart.
"""

from __future__ import annotations


class HaulLedgerError(Exception):
    """Base class for all haul ledger errors."""


class GatewayError(HaulLedgerError):
    """A call to the ledger gateway failed (transport or JSON-RPC error)."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class SyncFailure(HaulLedgerError):
    """Reading round state from the gateway failed."""


class SubmissionFailure(HaulLedgerError):
    """A mutating action (report haul, advance round) failed."""


class MissingCredential(SubmissionFailure):
    """No signing credential is configured."""


class InvalidAmount(ValueError):
    """A haul amount is not a non-negative decimal with at most 18 places."""


class ArtifactError(HaulLedgerError):
    """Base class for chart artifact decoding failures."""


class UnrecognizedFormat(ArtifactError):
    """Raw artifact payload has a shape the decoder does not accept."""


class HeaderMismatch(ArtifactError):
    """Decoded artifact does not start with the PNG magic byte."""


__all__ = [
    "ArtifactError",
    "GatewayError",
    "HaulLedgerError",
    "HeaderMismatch",
    "InvalidAmount",
    "MissingCredential",
    "SubmissionFailure",
    "SyncFailure",
    "UnrecognizedFormat",
]
