"""
Error taxonomy for DID authentication.

Every rejection point in the challenge-response flow raises a distinct
subclass of AuthError. Each class carries the client-facing ``kind`` and
HTTP ``status_code`` so the API layer can translate it without a lookup
table.
"""


class AuthError(Exception):
    """Base class for all authentication failures."""
    kind = "AuthError"
    status_code = 400
    default_message = "Authentication failed"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(AuthError):
    """Malformed request body."""
    kind = "ValidationError"
    default_message = "Invalid input data"


class NotFound(AuthError):
    """No identity is registered under the given DID."""
    kind = "NotFound"
    status_code = 404
    default_message = "User not found"


class IdentityExists(AuthError):
    """Signup for a DID that is already registered."""
    kind = "IdentityExists"
    default_message = "User with this DID already exists"


class InvalidNonce(AuthError):
    """No outstanding nonce, or it has expired or been consumed."""
    kind = "InvalidNonce"
    default_message = "Invalid or expired nonce"


class NonceMismatch(AuthError):
    """The credential's nonce is not the one currently outstanding."""
    kind = "NonceMismatch"
    default_message = "Invalid nonce"


class MalformedIdentity(AuthError):
    """The DID does not embed a decodable Ed25519 public key."""
    kind = "MalformedIdentity"
    default_message = "Invalid DID format"


class InvalidSignature(AuthError):
    """The proof signature does not verify against the embedded key."""
    kind = "InvalidSignature"
    default_message = "Invalid signature"


class InternalError(AuthError):
    """Storage or otherwise unexpected fault."""
    kind = "InternalError"
    status_code = 500
    default_message = "Internal server error"

    def to_dict(self) -> dict:
        # Storage details stay in the server log
        return {"error": InternalError.default_message, "kind": self.kind}


class StorageError(InternalError):
    """The identity registry could not be read or written."""
    default_message = "Identity storage failure"


class SessionError(AuthError):
    """Missing or invalid session token."""
    kind = "Unauthenticated"
    status_code = 401
    default_message = "Authentication required"


class SessionExpired(SessionError):
    """Session token signature is valid but its lifetime has passed."""
    default_message = "Session expired"
