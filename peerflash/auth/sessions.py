"""
Session tokens.

A successful login mints an HS256 JWT carrying the DID, issue time and
expiry. Tokens are stateless: validity is decided by signature and expiry
alone, so nothing about a session is stored server-side.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

import jwt

from .errors import SessionError, SessionExpired
from .identity import short_did

logger = logging.getLogger(__name__)

SESSION_ALGORITHM = "HS256"
DEFAULT_SESSION_TTL = 24 * 60 * 60  # 24 hours


@dataclass(frozen=True)
class SessionToken:
    """A decoded (or freshly minted) session."""
    did: str
    issued_at: int
    expires_at: int
    token: str


class SessionIssuer:
    """
    Mints and validates session tokens with a process-wide secret.

    The secret comes from the immutable AuthSettings built at startup.
    """

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("Session signing secret must not be empty")
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, did: str) -> SessionToken:
        """Mint a session token for ``did``."""
        now = self._clock()
        issued_at = int(now)
        # Round up so a fractional issue time never shortens the session
        expires_at = math.ceil(now) + self.ttl_seconds
        payload = {
            "did": did,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self._secret, algorithm=SESSION_ALGORITHM)
        logger.info(f"Issued session for {short_did(did)} (expires {expires_at})")
        return SessionToken(did=did, issued_at=issued_at, expires_at=expires_at, token=token)

    def validate(self, token: str) -> SessionToken:
        """
        Check a token's signature and expiry.

        Expiry is compared against this issuer's clock rather than PyJWT's,
        so a token is accepted up to and including its ``exp`` second.

        Raises:
            SessionExpired: if the token is past its expiry.
            SessionError: if the token is missing, malformed or forged.
        """
        if not token:
            raise SessionError()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[SESSION_ALGORITHM],  # Only accept HS256
                options={
                    "verify_signature": True,
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["did", "iat", "exp"],
                },
            )
        except jwt.InvalidSignatureError:
            logger.warning("Session rejected: invalid signature")
            raise SessionError("Invalid session")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Session rejected: {e}")
            raise SessionError("Invalid session")

        did = payload["did"]
        issued_at = payload["iat"]
        expires_at = payload["exp"]
        if not isinstance(did, str) or not isinstance(expires_at, int):
            raise SessionError("Invalid session")

        if self._clock() > expires_at:
            logger.info(f"Session expired for {short_did(did)}")
            raise SessionExpired()

        return SessionToken(did=did, issued_at=issued_at, expires_at=expires_at, token=token)
