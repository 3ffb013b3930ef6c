"""
Tests for nonce issuance and credential verification.
"""

import threading
from dataclasses import replace

import pytest

from peerflash.auth.challenge import NonceIssuer
from peerflash.auth.credentials import build_credential, sign_credential
from peerflash.auth.errors import (
    InvalidNonce,
    InvalidSignature,
    MalformedIdentity,
    NonceMismatch,
    NotFound,
)
from peerflash.auth.identity import KeyPair, generate_identity
from peerflash.auth.verifier import CredentialVerifier
from peerflash.registry.identities import IdentityRegistry


@pytest.fixture
def nonces(registry, clock):
    return NonceIssuer(registry, clock=clock)


@pytest.fixture
def verifier(registry, clock):
    return CredentialVerifier(registry, clock=clock)


@pytest.fixture
def signed_up(registry, alice):
    registry.create(alice.did, alice.name, alice.major)
    return alice


def signed(identity, nonce, keypair=None):
    return sign_credential(build_credential(identity.did, nonce), keypair or identity.keypair)


class TestNonceIssuer:
    """Tests for issuing challenges."""

    def test_issue(self, nonces, registry, signed_up, clock):
        """A 256-bit nonce is stored with a five minute expiry."""
        challenge = nonces.issue(signed_up.did)

        assert len(challenge.value) == 64
        int(challenge.value, 16)
        assert challenge.expires_at == clock.now + 300

        record = registry.get(signed_up.did)
        assert record.nonce == challenge.value
        assert record.nonce_expires_at == challenge.expires_at

    def test_unique(self, nonces, signed_up):
        assert nonces.issue(signed_up.did).value != nonces.issue(signed_up.did).value

    def test_unknown_identity(self, nonces, alice):
        with pytest.raises(NotFound):
            nonces.issue(alice.did)


class TestVerifySuccess:
    """Tests for the happy path."""

    def test_verify(self, nonces, verifier, registry, signed_up):
        """A correctly signed answer verifies and consumes the nonce."""
        nonce = nonces.issue(signed_up.did).value

        record = verifier.verify(signed(signed_up, nonce))

        assert record.did == signed_up.did
        assert registry.get(signed_up.did).nonce is None

    def test_replay(self, nonces, verifier, signed_up):
        """The same signed credential cannot be used twice."""
        credential = signed(signed_up, nonces.issue(signed_up.did).value)
        verifier.verify(credential)

        with pytest.raises(InvalidNonce):
            verifier.verify(credential)

    def test_proof_metadata_not_signed(self, nonces, verifier, signed_up):
        """Only the claims are signed; the proof's own timestamp is not."""
        credential = signed(signed_up, nonces.issue(signed_up.did).value)
        credential = replace(credential, proof=replace(credential.proof, created="1999-01-01T00:00:00.000Z"))

        verifier.verify(credential)


class TestNonceExpiry:
    """Tests for the nonce validity window."""

    def test_accepted_at_expiry(self, nonces, verifier, signed_up, clock):
        """A nonce issued at T is accepted at exactly T+5min."""
        nonce = nonces.issue(signed_up.did).value
        clock.advance(300)

        verifier.verify(signed(signed_up, nonce))

    def test_rejected_after_expiry(self, nonces, verifier, signed_up, clock):
        """A nonce issued at T is rejected strictly after T+5min."""
        nonce = nonces.issue(signed_up.did).value
        clock.advance(300.001)

        with pytest.raises(InvalidNonce):
            verifier.verify(signed(signed_up, nonce))

    def test_no_challenge(self, verifier, signed_up):
        """Verifying without ever requesting a nonce fails."""
        with pytest.raises(InvalidNonce):
            verifier.verify(signed(signed_up, "never-issued"))


class TestVerifyRejections:
    """Tests for each rejection point."""

    def test_unknown_identity(self, verifier, alice):
        with pytest.raises(NotFound):
            verifier.verify(signed(alice, "n1"))

    def test_wrong_key(self, nonces, verifier, signed_up):
        """Signed by a key other than the one embedded in the issuer DID."""
        nonce = nonces.issue(signed_up.did).value
        mallory = KeyPair.generate()

        with pytest.raises(InvalidSignature):
            verifier.verify(signed(signed_up, nonce, keypair=mallory))

    def test_nonce_mismatch_with_valid_signature(self, nonces, verifier, signed_up):
        """A differing nonce fails even when the signature is genuine."""
        nonces.issue(signed_up.did)

        with pytest.raises(NonceMismatch):
            verifier.verify(signed(signed_up, "0" * 64))

    def test_superseded_nonce(self, nonces, verifier, signed_up):
        """Issuing a new nonce invalidates credentials for the old one."""
        old = nonces.issue(signed_up.did).value
        credential = signed(signed_up, old)
        nonces.issue(signed_up.did)

        with pytest.raises(NonceMismatch):
            verifier.verify(credential)

    def test_altered_after_signing(self, nonces, verifier, signed_up):
        """Changing issuanceDate after signing breaks the signature."""
        credential = signed(signed_up, nonces.issue(signed_up.did).value)
        tampered = replace(credential, issuance_date="2030-01-01T00:00:00.000Z")

        with pytest.raises(InvalidSignature):
            verifier.verify(tampered)

    def test_undecodable_signature(self, nonces, verifier, signed_up):
        credential = signed(signed_up, nonces.issue(signed_up.did).value)
        broken = replace(credential, proof=replace(credential.proof, signature="%%%not-base64"))

        with pytest.raises(InvalidSignature):
            verifier.verify(broken)

    def test_truncated_signature(self, nonces, verifier, signed_up):
        credential = signed(signed_up, nonces.issue(signed_up.did).value)
        short = replace(credential, proof=replace(credential.proof, signature="AAAA"))

        with pytest.raises(InvalidSignature):
            verifier.verify(short)

    def test_unsigned(self, nonces, verifier, signed_up):
        unsigned = build_credential(signed_up.did, nonces.issue(signed_up.did).value)
        with pytest.raises(InvalidSignature):
            verifier.verify(unsigned)

    def test_malformed_identity(self, registry, nonces, verifier):
        """A registered DID without a decodable key cannot log in."""
        did = "did:key:z!!!"
        registry.create(did, "Broken", "Nothing")
        nonce = nonces.issue(did).value
        credential = sign_credential(build_credential(did, nonce), KeyPair.generate())

        with pytest.raises(MalformedIdentity):
            verifier.verify(credential)


class TestRetryPolicy:
    """Tests for what a failed attempt does to the nonce."""

    def test_failure_keeps_nonce_by_default(self, nonces, verifier, signed_up):
        """A failed attempt may be retried with the same nonce."""
        nonce = nonces.issue(signed_up.did).value

        with pytest.raises(InvalidSignature):
            verifier.verify(signed(signed_up, nonce, keypair=KeyPair.generate()))

        verifier.verify(signed(signed_up, nonce))

    def test_failure_burns_nonce_when_configured(self, registry, nonces, signed_up, clock):
        """With invalidate_nonce_on_failure, any failed attempt forces a new login."""
        strict = CredentialVerifier(registry, clock=clock, invalidate_nonce_on_failure=True)
        nonce = nonces.issue(signed_up.did).value

        with pytest.raises(InvalidSignature):
            strict.verify(signed(signed_up, nonce, keypair=KeyPair.generate()))

        assert registry.get(signed_up.did).nonce is None
        with pytest.raises(InvalidNonce):
            strict.verify(signed(signed_up, nonce))


class RacingRegistry(IdentityRegistry):
    """Simulates a concurrent verifier consuming the nonce just before we do."""

    def clear_nonce_if(self, did, expected):
        super().clear_nonce_if(did, expected)
        return super().clear_nonce_if(did, expected)


class TestConcurrency:
    """Tests for single-use nonces under concurrent verification."""

    def test_lost_race(self, clock, alice):
        """Losing the compare-and-clear is reported as InvalidNonce."""
        registry = RacingRegistry(clock=clock)
        registry.create(alice.did, alice.name, alice.major)
        nonce = NonceIssuer(registry, clock=clock).issue(alice.did).value
        verifier = CredentialVerifier(registry, clock=clock)

        with pytest.raises(InvalidNonce):
            verifier.verify(signed(alice, nonce))

    def test_parallel_verifies(self, nonces, verifier, signed_up):
        """Exactly one of many simultaneous verifications succeeds."""
        credential = signed(signed_up, nonces.issue(signed_up.did).value)
        attempts = 8
        barrier = threading.Barrier(attempts)
        results = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                verifier.verify(credential)
                outcome = "ok"
            except (InvalidNonce, NonceMismatch) as e:
                outcome = e.kind
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(attempts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert len(results) == attempts
        assert set(results) - {"ok"} <= {"InvalidNonce", "NonceMismatch"}

    def test_two_identities_independent(self, registry, nonces, verifier, signed_up):
        """Nonces are per identity."""
        bob = generate_identity("Bob", "History")
        registry.create(bob.did, bob.name, bob.major)

        alice_nonce = nonces.issue(signed_up.did).value
        bob_nonce = nonces.issue(bob.did).value

        verifier.verify(signed(bob, bob_nonce))
        verifier.verify(signed(signed_up, alice_nonce))
