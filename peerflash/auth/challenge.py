"""
Login challenges.

Each login attempt starts with a single-use random nonce bound to one
identity. Issuing a nonce overwrites any outstanding one, so a credential
signed against an earlier nonce can no longer be verified.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from .identity import short_did

if TYPE_CHECKING:
    from ..registry.identities import IdentityRegistry

logger = logging.getLogger(__name__)

NONCE_BYTES = 32  # 256 bits
DEFAULT_NONCE_TTL = 300  # 5 minutes


@dataclass(frozen=True)
class NonceChallenge:
    """An issued challenge."""
    did: str
    value: str
    expires_at: float


class NonceIssuer:
    """Creates and stores login nonces."""

    def __init__(
        self,
        registry: "IdentityRegistry",
        ttl_seconds: int = DEFAULT_NONCE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, did: str) -> NonceChallenge:
        """
        Issue a fresh nonce for ``did``.

        Raises:
            NotFound: if the identity is not registered.
        """
        value = secrets.token_hex(NONCE_BYTES)
        expires_at = self._clock() + self.ttl_seconds
        self.registry.set_nonce(did, value, expires_at)
        logger.info(f"Issued login nonce for {short_did(did)} (ttl {self.ttl_seconds}s)")
        return NonceChallenge(did=did, value=value, expires_at=expires_at)
