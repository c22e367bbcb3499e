"""Tests for ledger call signing and verification."""

import pytest

from haulledger.ledger.errors import MissingCredential
from haulledger.ledger.signer import (
    CallSigner,
    build_call,
    load_keypair,
    transaction_hash,
    verify_call,
)


@pytest.fixture
def alice():
    import bittensor as bt
    return bt.Keypair.create_from_uri("//Alice")


@pytest.fixture
def bob():
    import bittensor as bt
    return bt.Keypair.create_from_uri("//Bob")


class TestCallSigning:

    def test_sign_and_verify_roundtrip(self, alice):
        signer = CallSigner(alice, contract="0xC0")
        signed = signer.record_haul("5Participant", 10)
        assert signed.signature
        assert signed.call.method == "recordHaul"
        assert signed.call.params == {"participant": "5Participant", "amount": "10"}
        assert signed.call.contract == "0xC0"
        assert verify_call(signed)

    def test_advance_round_call(self, alice):
        signed = CallSigner(alice).advance_round()
        assert signed.call.method == "advanceRound"
        assert signed.call.params == {}
        assert verify_call(signed)

    def test_tampered_params_fail(self, alice):
        signed = CallSigner(alice).record_haul("5Participant", 10)
        signed.call.params["amount"] = "1000"
        assert not verify_call(signed)

    def test_wrong_declared_signer_fails(self, alice, bob):
        signed = CallSigner(alice).advance_round()
        signed.call.signer = bob.ss58_address
        assert not verify_call(signed)

    def test_garbage_signature_fails(self, alice):
        signed = CallSigner(alice).advance_round()
        signed.signature = "not-hex"
        assert not verify_call(signed)

    def test_empty_signature_fails(self, alice):
        signed = CallSigner(alice).advance_round()
        signed.signature = ""
        assert not verify_call(signed)

    def test_sign_rejects_foreign_call(self, alice, bob):
        call = build_call("advanceRound", {}, signer=bob.ss58_address)
        with pytest.raises(ValueError, match="does not match"):
            CallSigner(alice).sign(call)

    def test_nonces_make_hashes_unique(self, alice):
        signer = CallSigner(alice)
        a = signer.advance_round()
        b = signer.advance_round()
        assert a.call.nonce != b.call.nonce
        assert transaction_hash(a) != transaction_hash(b)
        assert transaction_hash(a).startswith("0x")


class TestLoadKeypair:

    def test_uri_credential(self, alice):
        assert load_keypair("//Alice").ss58_address == alice.ss58_address

    def test_missing_credential(self):
        with pytest.raises(MissingCredential, match="Private key not set"):
            load_keypair("")
        with pytest.raises(MissingCredential):
            load_keypair("   ")

    def test_from_credential(self, alice):
        signer = CallSigner.from_credential("//Alice", contract="0xC0")
        assert signer.address == alice.ss58_address
        assert signer.contract == "0xC0"
