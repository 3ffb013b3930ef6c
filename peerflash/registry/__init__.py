"""Identity registry module."""
from .identities import IdentityRegistry, IdentityRecord

__all__ = [
    "IdentityRegistry",
    "IdentityRecord",
]
