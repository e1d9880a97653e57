"""
Contact Key Cache

Public keys learned from other parties, keyed by (identifier, key kind):
- Length validation against the kind's backend on every write
- Identifiers normalized to lower case
- Optional shared secret attached after a KEM exchange
- JSON persistence (pqc_contacts.json), atomic replace on load

The cache is shared between import tasks and display code, so every access
goes through one re-entrant lock. Conflicts resolve last-write-wins.
"""

import base64
import binascii
import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..backends.base import AlgorithmBackend
from ..exceptions import (
    KeyLengthMismatchError,
    MalformedPayloadError,
    UnknownContactError,
    UnsupportedAlgorithmError,
)
from ..models import KeyKind
from ..utils.files import atomic_write_bytes, read_bytes

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_identifier(identifier: str) -> str:
    """Contacts are keyed by trimmed, lower-cased identifier."""
    return identifier.strip().lower()


# =============================================================================
# Models
# =============================================================================


@dataclass
class ContactEntry:
    """A remote party's public key for one key kind."""

    identifier: str
    kind: KeyKind
    algorithm: str
    public_key: bytes
    shared_secret: Optional[bytes] = None
    last_updated: int = 0

    @property
    def key(self) -> Tuple[str, KeyKind]:
        return (normalize_identifier(self.identifier), self.kind)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "email": self.identifier,
            "kind": self.kind.value,
            "algorithm": self.algorithm,
            "publicKey": base64.b64encode(self.public_key).decode(),
            "sharedSecret": (
                base64.b64encode(self.shared_secret).decode() if self.shared_secret else None
            ),
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContactEntry":
        """
        Create from dictionary.

        Entries written before key kinds existed carry `kemAlgorithm` and
        are read as PQC KEM keys.
        """
        try:
            if "kemAlgorithm" in data and "algorithm" not in data:
                kind = KeyKind.PQC_KEM
                algorithm = data["kemAlgorithm"]
            else:
                kind = KeyKind(data.get("kind", KeyKind.PQC_KEM.value))
                algorithm = data["algorithm"]

            shared_secret = data.get("sharedSecret")
            return cls(
                identifier=normalize_identifier(data["email"]),
                kind=kind,
                algorithm=algorithm,
                public_key=base64.b64decode(data["publicKey"], validate=True),
                shared_secret=(
                    base64.b64decode(shared_secret, validate=True) if shared_secret else None
                ),
                last_updated=int(data.get("lastUpdated", 0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError, binascii.Error) as e:
            raise MalformedPayloadError(f"Invalid contact entry: {e}", e) from e


# =============================================================================
# Cache
# =============================================================================


class ContactKeyCache:
    """
    Thread-safe (identifier, kind) -> ContactEntry map.

    Usage:
        cache = ContactKeyCache(backends, path)
        cache.save_contact("Bob@Example.com", "Kyber512", public_key)
        cache.get_public_key("bob@example.com")
    """

    def __init__(
        self,
        backends: Mapping[KeyKind, AlgorithmBackend],
        path: Optional[Path] = None,
    ):
        self._backends = backends
        self._path = Path(path) if path else None
        self._entries: Dict[Tuple[str, KeyKind], ContactEntry] = {}
        self._lock = threading.RLock()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # =========================================================================
    # Writes
    # =========================================================================

    def validate_public_key(self, kind: KeyKind, algorithm: str, public_key: bytes) -> None:
        """
        Check a public key against the kind's backend.

        Raises:
            UnsupportedAlgorithmError: If the backend does not know the algorithm
            KeyLengthMismatchError: If the key length is wrong
        """
        backend = self._backends.get(kind)
        if backend is None or not algorithm or not backend.supports(algorithm):
            raise UnsupportedAlgorithmError(algorithm, kind.label)

        expected = backend.expected_public_key_length(algorithm)
        if public_key is None or len(public_key) != expected:
            actual = len(public_key) if public_key is not None else 0
            logger.warning(
                f"Rejected {kind.label} key for {algorithm}: {actual} bytes, expected {expected}"
            )
            raise KeyLengthMismatchError(algorithm, expected, actual)

    def save_contact(
        self,
        identifier: str,
        algorithm: str,
        public_key: bytes,
        kind: KeyKind = KeyKind.PQC_KEM,
    ) -> ContactEntry:
        """
        Upsert a contact's public key.

        Validation happens before the lock is taken, so a rejected key never
        touches the existing entry.
        """
        identifier = normalize_identifier(identifier or "")
        if not identifier:
            raise ValueError("Contact identifier must not be empty")
        self.validate_public_key(kind, algorithm, public_key)

        entry = ContactEntry(
            identifier=identifier,
            kind=kind,
            algorithm=algorithm,
            public_key=bytes(public_key),
            last_updated=_now_ms(),
        )
        with self._lock:
            self._entries[entry.key] = entry

        logger.info(f"Saved {kind.label} key ({algorithm}) for {identifier}")
        return entry

    def save_shared_secret(
        self,
        identifier: str,
        shared_secret: bytes,
        kind: KeyKind = KeyKind.PQC_KEM,
    ) -> ContactEntry:
        """
        Attach a shared secret to an existing entry.

        Raises:
            UnknownContactError: If there is no entry to attach to
        """
        key = (normalize_identifier(identifier), kind)
        with self._lock:
            existing = self._entries.get(key)
            if existing is None:
                raise UnknownContactError(identifier, kind.label)
            updated = ContactEntry(
                identifier=existing.identifier,
                kind=existing.kind,
                algorithm=existing.algorithm,
                public_key=existing.public_key,
                shared_secret=bytes(shared_secret),
                last_updated=_now_ms(),
            )
            self._entries[key] = updated
        return updated

    def delete_contact(self, identifier: str, kind: Optional[KeyKind] = None) -> int:
        """
        Remove a contact's entry for one kind, or for every kind when kind is None.

        Returns:
            Number of entries removed
        """
        normalized = normalize_identifier(identifier)
        kinds = [kind] if kind is not None else list(KeyKind)
        removed = 0
        with self._lock:
            for k in kinds:
                if self._entries.pop((normalized, k), None) is not None:
                    removed += 1
        if removed:
            logger.info(f"Deleted {removed} contact entries for {normalized}")
        return removed

    def delete_identity(self, identifier: str) -> int:
        """Remove every entry for an identifier."""
        return self.delete_contact(identifier, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # =========================================================================
    # Reads
    # =========================================================================

    def get_contact(
        self, identifier: str, kind: KeyKind = KeyKind.PQC_KEM
    ) -> Optional[ContactEntry]:
        with self._lock:
            return self._entries.get((normalize_identifier(identifier), kind))

    def get_public_key(self, identifier: str, kind: KeyKind = KeyKind.PQC_KEM) -> Optional[bytes]:
        entry = self.get_contact(identifier, kind)
        return entry.public_key if entry else None

    def get_algorithm(self, identifier: str, kind: KeyKind = KeyKind.PQC_KEM) -> Optional[str]:
        entry = self.get_contact(identifier, kind)
        return entry.algorithm if entry else None

    def get_all_contacts(self, kind: Optional[KeyKind] = None) -> List[ContactEntry]:
        """Snapshot of all entries, optionally filtered by kind."""
        with self._lock:
            entries = list(self._entries.values())
        if kind is not None:
            entries = [e for e in entries if e.kind == kind]
        return entries

    # =========================================================================
    # Persistence
    # =========================================================================

    def persist(self, path: Optional[Path] = None) -> Path:
        """
        Write all entries as a JSON array.

        Returns:
            Path written
        """
        target = self._resolve_path(path)
        with self._lock:
            entries = sorted(self._entries.values(), key=lambda e: (e.key[0], e.kind.value))
            data = json.dumps([e.to_dict() for e in entries], indent=2).encode("utf-8")
            atomic_write_bytes(target, data)

        logger.info(f"Persisted {len(entries)} contact entries to {target}")
        return target

    def load(self, path: Optional[Path] = None) -> int:
        """
        Replace the cache contents with the file's entries.

        A missing file leaves an empty cache. The whole file is parsed before
        anything is replaced.

        Returns:
            Number of entries loaded

        Raises:
            MalformedPayloadError: If the file is not a valid contact list
            StorageIOError: If the file exists but cannot be read
        """
        source = self._resolve_path(path)
        if not source.exists():
            with self._lock:
                self._entries.clear()
            logger.info(f"No contact cache at {source}, starting empty")
            return 0

        raw = read_bytes(source)
        try:
            items = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning(f"Contact cache {source} is not valid JSON")
            raise MalformedPayloadError(f"Contact cache {source} is not valid JSON", e) from e
        if not isinstance(items, list):
            raise MalformedPayloadError(f"Contact cache {source} must hold a JSON array")

        loaded: Dict[Tuple[str, KeyKind], ContactEntry] = {}
        for item in items:
            if not isinstance(item, dict):
                raise MalformedPayloadError(f"Contact cache {source} holds a non-object entry")
            entry = ContactEntry.from_dict(item)
            loaded[entry.key] = entry

        with self._lock:
            self._entries = loaded

        logger.info(f"Loaded {len(loaded)} contact entries from {source}")
        return len(loaded)

    def _resolve_path(self, path: Optional[Path]) -> Path:
        if path is not None:
            return Path(path)
        if self._path is None:
            raise ValueError("No contact cache path configured")
        return self._path
