"""Signing and verification of ledger calls using bittensor keypairs.

The client signs each mutating call with its configured credential. The
gateway verifies the signature against the call's declared signer before
queueing the transaction.
"""

from __future__ import annotations

import secrets
from typing import Any

import bittensor as bt

from .determinism import compute_hash
from .errors import MissingCredential
from .models import LedgerCall, SignedCall


def _call_signing_payload(call: LedgerCall) -> str:
    """Canonical hash of the call that gets signed."""
    return compute_hash(call.model_dump(mode="json"))


def transaction_hash(signed: SignedCall) -> str:
    """Hash identifying a signed call on the ledger (covers the signature)."""
    return "0x" + compute_hash(signed.model_dump(mode="json"))


def load_keypair(credential: str) -> Any:
    """Build a keypair from a configured credential string.

    Accepts a derivation URI (``//Alice``), a mnemonic phrase or a hex seed.
    """
    credential = (credential or "").strip()
    if not credential:
        raise MissingCredential("Private key not set")
    if credential.startswith("//"):
        return bt.Keypair.create_from_uri(credential)
    if len(credential.split()) >= 12:
        return bt.Keypair.create_from_mnemonic(credential)
    return bt.Keypair.create_from_seed(credential)


def build_call(
    method: str,
    params: dict[str, Any],
    signer: str,
    contract: str = "",
) -> LedgerCall:
    """Build an unsigned call with a fresh nonce."""
    return LedgerCall(
        contract=contract,
        method=method,
        params=params,
        signer=signer,
        nonce=secrets.token_hex(16),
    )


class CallSigner:
    """Signs ledger calls with one keypair."""

    def __init__(self, keypair: Any, contract: str = ""):
        self.keypair = keypair
        self.contract = contract

    @classmethod
    def from_credential(cls, credential: str, contract: str = "") -> CallSigner:
        return cls(load_keypair(credential), contract=contract)

    @property
    def address(self) -> str:
        return self.keypair.ss58_address

    def sign(self, call: LedgerCall) -> SignedCall:
        """Sign a call built for this signer.

        Returns:
            The call with a hex-encoded signature attached.
        """
        if call.signer != self.address:
            raise ValueError(f"call signer {call.signer} does not match keypair {self.address}")
        signature = self.keypair.sign(_call_signing_payload(call).encode())
        sig_hex = signature.hex() if isinstance(signature, bytes) else str(signature)
        return SignedCall(call=call, signature=sig_hex)

    def record_haul(self, participant: str, amount: int) -> SignedCall:
        """Build and sign a ``recordHaul(participant, amount)`` call."""
        call = build_call(
            "recordHaul",
            {"participant": participant, "amount": str(amount)},
            signer=self.address,
            contract=self.contract,
        )
        return self.sign(call)

    def advance_round(self) -> SignedCall:
        """Build and sign an ``advanceRound()`` call."""
        call = build_call("advanceRound", {}, signer=self.address, contract=self.contract)
        return self.sign(call)


def verify_call(signed: SignedCall) -> bool:
    """Verify a signed call against the signer address it declares."""
    if not signed.signature:
        return False

    payload_hash = _call_signing_payload(signed.call)
    try:
        sig_bytes = bytes.fromhex(signed.signature.removeprefix("0x"))
    except ValueError:
        return False

    try:
        keypair = bt.Keypair(ss58_address=signed.call.signer)
        return keypair.verify(payload_hash.encode(), sig_bytes)
    except Exception:
        return False


__all__ = [
    "CallSigner",
    "build_call",
    "load_keypair",
    "transaction_hash",
    "verify_call",
]
