"""
Server-side credential verification.

Runs the ordered checks of the challenge-response login. Every step has
its own rejection type, and the nonce is consumed with a compare-and-clear
so one challenge can yield at most one verified login.
"""

import binascii
import hmac
import logging
import time
from typing import TYPE_CHECKING, Callable

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature

from .credentials import VerifiableCredential
from .errors import (
    AuthError,
    InvalidNonce,
    InvalidSignature,
    NonceMismatch,
    NotFound,
)
from .identity import load_public_key, public_key_from_did, short_did

if TYPE_CHECKING:
    from ..registry.identities import IdentityRecord, IdentityRegistry

logger = logging.getLogger(__name__)


class CredentialVerifier:
    """
    Verifies signed login credentials against the identity registry.

    Args:
        registry: Where identities and their outstanding nonces live
        clock: Source of the current Unix time
        invalidate_nonce_on_failure: When True, a credential that fails the
            nonce-match or signature checks also burns the nonce, forcing
            the client back to login. When False the nonce stays valid
            for retries until it expires.
    """

    def __init__(
        self,
        registry: "IdentityRegistry",
        clock: Callable[[], float] = time.time,
        invalidate_nonce_on_failure: bool = False,
    ):
        self.registry = registry
        self._clock = clock
        self.invalidate_nonce_on_failure = invalidate_nonce_on_failure

    def verify(self, credential: VerifiableCredential) -> "IdentityRecord":
        """
        Verify ``credential`` and consume its nonce.

        Returns:
            The identity the credential authenticates.

        Raises:
            NotFound, InvalidNonce, NonceMismatch, MalformedIdentity,
            InvalidSignature: at the first failing check.
        """
        did = credential.issuer

        record = self.registry.get(did)
        if record is None:
            logger.info(f"Verify rejected: unknown identity {short_did(did)}")
            raise NotFound()

        now = self._clock()
        if not record.has_live_nonce(now):
            logger.info(
                f"Verify rejected: no live nonce for {short_did(did)} "
                f"(has_nonce={record.nonce is not None}, expires_at={record.nonce_expires_at})"
            )
            raise InvalidNonce()

        stored_nonce = record.nonce
        try:
            self._check_nonce(credential, stored_nonce)
            self._check_signature(credential)
        except AuthError as e:
            logger.info(f"Verify rejected for {short_did(did)}: {e.kind}: {e}")
            if self.invalidate_nonce_on_failure:
                self.registry.clear_nonce_if(did, stored_nonce)
            raise

        if not self.registry.clear_nonce_if(did, stored_nonce):
            # Another verification consumed or replaced it between our check and now
            logger.warning(f"Verify lost nonce race for {short_did(did)}")
            raise InvalidNonce("Nonce already used")

        logger.info(f"Credential verified for {short_did(did)}")
        return record

    @staticmethod
    def _check_nonce(credential: VerifiableCredential, stored_nonce: str) -> None:
        presented = credential.credential_subject.nonce
        if not hmac.compare_digest(presented.encode(), stored_nonce.encode()):
            raise NonceMismatch()

    @staticmethod
    def _check_signature(credential: VerifiableCredential) -> None:
        public_key = load_public_key(public_key_from_did(credential.issuer))

        if credential.proof is None:
            raise InvalidSignature("Credential has no proof")
        try:
            signature = credential.signature_bytes()
        except (binascii.Error, ValueError):
            raise InvalidSignature("Signature is not valid base64")

        try:
            public_key.verify(signature, credential.canonical_bytes())
        except (_CryptoInvalidSignature, ValueError):
            raise InvalidSignature()

