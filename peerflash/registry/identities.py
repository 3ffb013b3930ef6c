"""
Identity Registry - Durable store of every identity that has signed up.

Persists per identity:
- Self-certifying DID (primary key)
- Display name and major
- The outstanding login nonce and its expiry

The nonce field is the only shared mutable state in the auth flow. All
mutations happen under one lock, and consuming a nonce is a
compare-and-clear so two verifications can never both spend it.
"""

import copy
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Callable, Dict, Optional

from ..auth.errors import IdentityExists, NotFound, StorageError
from ..auth.identity import short_did

logger = logging.getLogger(__name__)


@dataclass
class IdentityRecord:
    """A registered identity."""
    did: str
    display_name: str
    major: str
    created_at: float = 0
    nonce: Optional[str] = None
    nonce_expires_at: Optional[float] = None

    def has_live_nonce(self, now: float) -> bool:
        """True while a nonce is outstanding and ``now`` has not passed its expiry."""
        return (
            self.nonce is not None
            and self.nonce_expires_at is not None
            and now <= self.nonce_expires_at
        )

    def profile(self) -> dict:
        """Public fields only."""
        return {
            "did": self.did,
            "displayName": self.display_name,
            "major": self.major,
        }

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "IdentityRecord":
        # Filter out unknown fields
        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)


class IdentityRegistry:
    """
    Registry of identities, optionally persisted to a JSON file.

    Readers get copies of records, never the live objects, so a snapshot
    taken before a check cannot change underneath the caller.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path) if path else None
        self._clock = clock
        self._lock = threading.RLock()
        self._identities: Dict[str, IdentityRecord] = {}
        self._load()

    @classmethod
    def in_data_dir(cls, data_dir: Path, **kwargs) -> "IdentityRegistry":
        return cls(Path(data_dir) / "identities.json", **kwargs)

    def _load(self) -> None:
        """Load registry from disk."""
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load identity registry {self.path}: {e}")
            raise StorageError(f"Cannot read identity registry: {e}")

        for did, record in data.get("identities", {}).items():
            self._identities[did] = IdentityRecord.from_dict(record)
        logger.info(f"Loaded {len(self._identities)} identities from registry")

    def _save(self) -> None:
        """Write the registry atomically. Caller holds the lock."""
        if self.path is None:
            return
        data = {
            "version": 1,
            "updated": self._clock(),
            "identities": {
                did: record.to_dict()
                for did, record in self._identities.items()
            }
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save identity registry {self.path}: {e}")
            raise StorageError(f"Cannot write identity registry: {e}")
        logger.debug(f"Saved {len(self._identities)} identities to registry")

    def create(self, did: str, display_name: str, major: str) -> IdentityRecord:
        """
        Register a new identity.

        Raises:
            IdentityExists: if the DID is already registered.
            StorageError: if the write fails. Nothing is registered.
        """
        with self._lock:
            if did in self._identities:
                raise IdentityExists()
            record = IdentityRecord(
                did=did,
                display_name=display_name,
                major=major,
                created_at=self._clock(),
            )
            self._identities[did] = record
            try:
                self._save()
            except StorageError:
                del self._identities[did]
                raise
            logger.info(f"New identity registered: {display_name} ({short_did(did)})")
            return copy.copy(record)

    def get(self, did: str) -> Optional[IdentityRecord]:
        """Snapshot of an identity, or None."""
        with self._lock:
            record = self._identities.get(did)
            return copy.copy(record) if record else None

    def require(self, did: str) -> IdentityRecord:
        """Snapshot of an identity; raises NotFound if absent."""
        record = self.get(did)
        if record is None:
            raise NotFound()
        return record

    def __contains__(self, did: str) -> bool:
        with self._lock:
            return did in self._identities

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)

    def set_nonce(self, did: str, nonce: str, expires_at: float) -> IdentityRecord:
        """
        Store a nonce for an identity, replacing any outstanding one.

        Raises:
            NotFound: if the DID is not registered.
        """
        with self._lock:
            record = self._identities.get(did)
            if record is None:
                raise NotFound()
            previous = (record.nonce, record.nonce_expires_at)
            record.nonce = nonce
            record.nonce_expires_at = expires_at
            try:
                self._save()
            except StorageError:
                record.nonce, record.nonce_expires_at = previous
                raise
            return copy.copy(record)

    def clear_nonce_if(self, did: str, expected: str) -> bool:
        """
        Clear the stored nonce only if it still equals ``expected``.

        Returns True when this call consumed the nonce; False when it was
        already cleared or replaced.
        """
        with self._lock:
            record = self._identities.get(did)
            if record is None or record.nonce is None or record.nonce != expected:
                return False
            expires_at = record.nonce_expires_at
            record.nonce = None
            record.nonce_expires_at = None
            try:
                self._save()
            except StorageError:
                record.nonce, record.nonce_expires_at = expected, expires_at
                raise
            return True

