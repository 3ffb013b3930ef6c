"""
DID challenge-response authentication for PeerFlash.

Provides:
- Self-certifying identities (Ed25519 keypairs embedded in did:key)
- Verifiable credentials signed over a canonical byte layout
- Login nonces and their verification
- Stateless session tokens
"""

from .errors import (
    AuthError,
    ValidationError,
    NotFound,
    IdentityExists,
    InvalidNonce,
    NonceMismatch,
    MalformedIdentity,
    InvalidSignature,
    InternalError,
    StorageError,
    SessionError,
    SessionExpired,
)
from .identity import (
    KeyPair,
    LocalIdentity,
    generate_identity,
    load_identity,
    did_from_public_key,
    public_key_from_did,
    verify_signature,
)
from .credentials import (
    VerifiableCredential,
    CredentialSubject,
    Proof,
    build_credential,
    sign_credential,
)
from .challenge import NonceChallenge, NonceIssuer
from .verifier import CredentialVerifier
from .sessions import SessionIssuer, SessionToken

__all__ = [
    # Errors
    "AuthError",
    "ValidationError",
    "NotFound",
    "IdentityExists",
    "InvalidNonce",
    "NonceMismatch",
    "MalformedIdentity",
    "InvalidSignature",
    "InternalError",
    "StorageError",
    "SessionError",
    "SessionExpired",
    # Identity
    "KeyPair",
    "LocalIdentity",
    "generate_identity",
    "load_identity",
    "did_from_public_key",
    "public_key_from_did",
    "verify_signature",
    # Credentials
    "VerifiableCredential",
    "CredentialSubject",
    "Proof",
    "build_credential",
    "sign_credential",
    # Server side
    "NonceChallenge",
    "NonceIssuer",
    "CredentialVerifier",
    "SessionIssuer",
    "SessionToken",
]
