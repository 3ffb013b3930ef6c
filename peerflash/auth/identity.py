"""
Self-certifying identities using Ed25519 cryptography.

A PeerFlash identity is an Ed25519 keypair. The public key is embedded in
the identifier itself (``did:key:z<base64(pubkey)>``), so the server never
needs a registry lookup to learn which key signed a credential.
"""

import base64
import binascii
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature

from .errors import MalformedIdentity

DID_KEY_PREFIX = "did:key:"
MULTIBASE_PREFIX = "z"
PUBLIC_KEY_LENGTH = 32


@dataclass
class KeyPair:
    """Ed25519 key pair for signing."""
    private_key: Ed25519PrivateKey
    public_key: Ed25519PublicKey

    @classmethod
    def generate(cls) -> "KeyPair":
        """Generate a new random key pair."""
        private_key = Ed25519PrivateKey.generate()
        public_key = private_key.public_key()
        return cls(private_key=private_key, public_key=public_key)

    @classmethod
    def from_private_bytes(cls, private_bytes: bytes) -> "KeyPair":
        """
        Load key pair from private key bytes.

        Accepts the 32-byte seed, or the 64-byte seed||public key layout
        exported by NaCl-style libraries.
        """
        if len(private_bytes) == 64:
            private_bytes = private_bytes[:32]
        private_key = Ed25519PrivateKey.from_private_bytes(private_bytes)
        public_key = private_key.public_key()
        return cls(private_key=private_key, public_key=public_key)

    @classmethod
    def from_private_b64(cls, private_b64: str) -> "KeyPair":
        """Load key pair from a base64-encoded private key."""
        return cls.from_private_bytes(base64.b64decode(private_b64))

    def private_bytes(self) -> bytes:
        """Export private key as raw bytes (32 bytes)."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )

    def private_key_b64(self) -> str:
        """Export private key as base64 string."""
        return base64.b64encode(self.private_bytes()).decode('ascii')

    def public_bytes(self) -> bytes:
        """Export public key as raw bytes (32 bytes)."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )

    def public_key_b64(self) -> str:
        """Export public key as base64 string."""
        return base64.b64encode(self.public_bytes()).decode('ascii')

    def did(self) -> str:
        """The self-certifying identifier for this key."""
        return did_from_public_key(self.public_bytes())

    def sign(self, message: bytes) -> bytes:
        """Sign a message."""
        return self.private_key.sign(message)

    def sign_b64(self, message: bytes) -> str:
        """Sign a message and return base64 signature."""
        return base64.b64encode(self.sign(message)).decode('ascii')


def short_did(did: str) -> str:
    """Abbreviate a DID for log lines."""
    return did if len(did) <= 24 else f"{did[:20]}..."


def did_from_public_key(public_key_bytes: bytes) -> str:
    """Build ``did:key:z<base64>`` from raw public key bytes."""
    if len(public_key_bytes) != PUBLIC_KEY_LENGTH:
        raise ValueError(f"Ed25519 public key must be {PUBLIC_KEY_LENGTH} bytes")
    encoded = base64.b64encode(public_key_bytes).decode('ascii')
    return f"{DID_KEY_PREFIX}{MULTIBASE_PREFIX}{encoded}"


def public_key_from_did(did: str) -> bytes:
    """
    Extract the embedded public key from a DID.

    Takes the trailing ``:``-separated segment, drops any ``#fragment``
    and the multibase ``z`` prefix, then base64-decodes it.

    Raises:
        MalformedIdentity: if the segment is missing, undecodable, or not
            a 32-byte key.
    """
    segment = did.split(":")[-1].split("#")[0] if did else ""
    if not segment.startswith(MULTIBASE_PREFIX) or len(segment) == 1:
        raise MalformedIdentity("Invalid DID format")

    try:
        key_bytes = base64.b64decode(segment[1:], validate=True)
    except (binascii.Error, ValueError):
        raise MalformedIdentity("DID key segment is not valid base64")

    if len(key_bytes) != PUBLIC_KEY_LENGTH:
        raise MalformedIdentity(
            f"DID key must be {PUBLIC_KEY_LENGTH} bytes, got {len(key_bytes)}"
        )
    return key_bytes


def load_public_key(public_key_bytes: bytes) -> Ed25519PublicKey:
    """Load an Ed25519 public key, mapping failures to MalformedIdentity."""
    try:
        return Ed25519PublicKey.from_public_bytes(public_key_bytes)
    except ValueError as e:
        raise MalformedIdentity(f"Unusable Ed25519 public key: {e}")


def verify_signature(
    public_key_bytes: bytes,
    message: bytes,
    signature: bytes
) -> bool:
    """Verify an Ed25519 signature."""
    try:
        public_key = Ed25519PublicKey.from_public_bytes(public_key_bytes)
        public_key.verify(signature, message)
        return True
    except (_CryptoInvalidSignature, ValueError):
        return False


@dataclass
class LocalIdentity:
    """
    A user's identity as held on their own device.

    Contains the keypair plus the display attributes submitted at signup.
    The private key never leaves this object except through ``save``.
    """
    keypair: KeyPair
    name: str
    major: str
    created_at: int

    @property
    def did(self) -> str:
        return self.keypair.did()

    def to_dict(self) -> dict:
        """Serialize identity (public parts only)."""
        return {
            "did": self.did,
            "name": self.name,
            "major": self.major,
            "created_at": self.created_at
        }

    def save(self, path: Path) -> None:
        """Save identity to file."""
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "private_key": self.keypair.private_key_b64(),
            "did": self.did,
            "name": self.name,
            "major": self.major,
            "created_at": self.created_at
        }

        with open(path, 'w') as f:
            json.dump(data, f, indent=2)

        # Set restrictive permissions
        path.chmod(0o600)

    @classmethod
    def load(cls, path: Path) -> "LocalIdentity":
        """Load identity from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        keypair = KeyPair.from_private_b64(data["private_key"])
        if data.get("did") and data["did"] != keypair.did():
            raise MalformedIdentity(f"Identity file {path} does not match its key")

        return cls(
            keypair=keypair,
            name=data.get("name", ""),
            major=data.get("major", ""),
            created_at=data["created_at"]
        )


def generate_identity(name: str = "", major: str = "") -> LocalIdentity:
    """Generate a new identity with a fresh keypair."""
    return LocalIdentity(
        keypair=KeyPair.generate(),
        name=name,
        major=major,
        created_at=int(time.time())
    )


def load_identity(path: Path) -> Optional[LocalIdentity]:
    """Load identity from file, or return None if not found."""
    if not path.exists():
        return None
    return LocalIdentity.load(path)
