"""
PeerFlash - decentralized-identity login

Users sign in by answering a single-use server nonce with a verifiable
credential signed by the Ed25519 key embedded in their did:key identifier.

Example:
    >>> from peerflash.auth import generate_identity, build_credential, sign_credential
    >>> me = generate_identity("Ada", "Mathematics")
    >>> vc = sign_credential(build_credential(me.did, nonce), me.keypair)
"""

__version__ = "0.1.0"

from .config import Config, get_config
from .auth.identity import KeyPair, LocalIdentity, generate_identity

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "KeyPair",
    "LocalIdentity",
    "generate_identity",
]
