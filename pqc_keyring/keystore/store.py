"""
Key Store

Lifecycle of one kind of own key pair (classical, PQC signature or PQC KEM)
for every account, plus the import path for other parties' public keys of
that kind.

Features:
- Atomic generation: a pair is committed only after the backend returned
  both halves and the public key passed length validation
- Per-account generation lock, cooperative cancellation between backend calls
- Algorithm switch policy (no silent migration of key pairs)
- Export refuses pairs whose key length or algorithm does not match
- JSON persistence with secret keys encrypted under the store passphrase
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..backends.base import AlgorithmBackend
from ..config import AlgorithmConfig
from ..contacts.cache import ContactEntry, ContactKeyCache
from ..crypto.codec import KeyCodec
from ..exceptions import (
    AlgorithmMismatchError,
    AlgorithmSwitchError,
    ConfigurationError,
    KeyLengthMismatchError,
    MalformedPayloadError,
    StorageIOError,
    UnknownContactError,
    UnsupportedAlgorithmError,
)
from ..models import AlgorithmState, KeyKind, KeyPairRecord
from ..utils.files import atomic_write_bytes, read_bytes
from ..workers import CancellationToken

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class KeyStore:
    """
    Own key pairs of one key kind.

    Usage:
        store = KeyStore(KeyKind.PQC_SIGNATURE, backend, codec, cache)
        store.generate_key_pair("acct-1", "Dilithium2")
        store.export_public_key("acct-1")
    """

    def __init__(
        self,
        kind: KeyKind,
        backend: AlgorithmBackend,
        codec: KeyCodec,
        cache: ContactKeyCache,
        path: Optional[Path] = None,
        passphrase: Optional[str] = None,
        algorithms: Optional[AlgorithmConfig] = None,
    ):
        """
        Initialize key store.

        Args:
            kind: Key kind served by this store
            backend: Backend for the kind
            codec: Codec encrypting secret keys at rest
            cache: Shared contact cache for remote public keys
            path: JSON file for own key pairs (None keeps pairs in memory)
            passphrase: Passphrase protecting secret keys in the file
            algorithms: Allow-lists (defaults to AlgorithmConfig())
        """
        if path is not None and not passphrase:
            raise ConfigurationError(
                f"A store passphrase is required to persist {kind.label} secret keys"
            )

        self.kind = kind
        self.backend = backend
        self.codec = codec
        self.cache = cache
        self.path = Path(path) if path else None
        self.algorithms = algorithms or AlgorithmConfig()
        self._passphrase = passphrase

        self._records: Dict[str, KeyPairRecord] = {}
        self._encrypted_secrets: Dict[str, bytes] = {}
        self._lock = threading.RLock()
        self._account_locks: Dict[str, threading.Lock] = {}

        if self.path is not None and self.path.exists():
            self._load()

    # =========================================================================
    # Queries
    # =========================================================================

    def has_own_key_pair(self, account_id: str) -> bool:
        with self._lock:
            record = self._records.get(account_id)
            return bool(record and record.exists)

    def selected_algorithm(self, account_id: str) -> Optional[str]:
        with self._lock:
            record = self._records.get(account_id)
            return record.algorithm if record else None

    def algorithm_state(self, account_id: str) -> AlgorithmState:
        with self._lock:
            record = self._records.get(account_id)
            return record.state if record else AlgorithmState.NO_ALGORITHM

    def accounts(self) -> List[str]:
        """Accounts holding a key pair of this kind."""
        with self._lock:
            return [a for a, r in self._records.items() if r.exists]

    # =========================================================================
    # Algorithm Selection
    # =========================================================================

    def select_algorithm(self, account_id: str, algorithm: str) -> None:
        """
        Select the algorithm for an account.

        Raises:
            UnsupportedAlgorithmError: If the algorithm is not allowed or enabled
            AlgorithmSwitchError: If a pair for another algorithm exists
        """
        self._check_algorithm(algorithm)

        with self._lock:
            record = self._records.get(account_id)
            if record and record.exists and record.algorithm != algorithm:
                logger.warning(
                    f"Refused {self.kind.label} algorithm switch for {account_id}: "
                    f"{record.algorithm} -> {algorithm}"
                )
                raise AlgorithmSwitchError(account_id, record.algorithm, algorithm)
            if record is None:
                record = KeyPairRecord(account_id=account_id, kind=self.kind)
                self._records[account_id] = record
            record.algorithm = algorithm
            self._save()

        logger.info(f"Selected {self.kind.label} algorithm {algorithm} for {account_id}")

    # =========================================================================
    # Own Key Pairs
    # =========================================================================

    def generate_key_pair(
        self,
        account_id: str,
        algorithm: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> bytes:
        """
        Generate and commit a key pair, replacing any existing one.

        Args:
            account_id: Account identifier
            algorithm: Algorithm (defaults to the selected or configured one)
            cancel_token: Checked before and after the backend call

        Returns:
            The new public key

        Raises:
            UnsupportedAlgorithmError: If the algorithm is not allowed or enabled
            OperationCancelledError: If cancelled before commit (nothing written)
        """
        algorithm = (
            algorithm
            or self.selected_algorithm(account_id)
            or self.algorithms.default_for(self.kind)
        )
        self._check_algorithm(algorithm)
        operation = f"{self.kind.label} key generation for {account_id}"

        with self._account_lock(account_id):
            if cancel_token:
                cancel_token.raise_if_cancelled(operation)

            public_key, secret_key = self.backend.generate_keypair(algorithm)

            if cancel_token:
                cancel_token.raise_if_cancelled(operation)

            expected = self.backend.expected_public_key_length(algorithm)
            if len(public_key) != expected:
                raise AlgorithmMismatchError(
                    f"Backend returned a {len(public_key)}-byte public key for {algorithm}, "
                    f"expected {expected}"
                )

            self._commit(account_id, algorithm, public_key, secret_key)

        logger.info(f"Generated {self.kind.label} key pair ({algorithm}) for {account_id}")
        return public_key

    def import_own_key_pair(
        self,
        account_id: str,
        algorithm: str,
        public_key: Optional[bytes],
        secret_key: bytes,
    ) -> None:
        """
        Replace the account's pair with an imported one.

        When public_key is None it is recovered from the secret key by the backend.

        Raises:
            UnsupportedAlgorithmError: If the algorithm is not allowed or enabled
            KeyLengthMismatchError: If the public key length is wrong
        """
        self._check_algorithm(algorithm)
        if not secret_key:
            raise MalformedPayloadError("Imported key pair has no secret key")
        if public_key is None:
            public_key = self.backend.export_public_key(algorithm, secret_key)

        expected = self.backend.expected_public_key_length(algorithm)
        if len(public_key) != expected:
            logger.warning(
                f"Rejected imported {self.kind.label} pair for {account_id}: "
                f"{len(public_key)} bytes, expected {expected}"
            )
            raise KeyLengthMismatchError(algorithm, expected, len(public_key))

        with self._account_lock(account_id):
            self._commit(account_id, algorithm, public_key, secret_key)

        logger.info(f"Imported {self.kind.label} key pair ({algorithm}) for {account_id}")

    def export_public_key(self, account_id: str) -> Optional[bytes]:
        """
        Return the account's public key, or None if it has no pair.

        Raises:
            AlgorithmMismatchError: If the stored pair does not fit its algorithm
        """
        with self._lock:
            record = self._records.get(account_id)
            if record is None or not record.exists:
                return None

            try:
                expected = self.backend.expected_public_key_length(record.algorithm)
            except UnsupportedAlgorithmError as e:
                raise AlgorithmMismatchError(
                    f"Stored {self.kind.label} pair for {account_id} uses unknown "
                    f"algorithm {record.algorithm}",
                    e,
                ) from e
            if len(record.public_key) != expected:
                logger.error(
                    f"Stored {self.kind.label} key for {account_id} has "
                    f"{len(record.public_key)} bytes, {record.algorithm} expects {expected}"
                )
                raise AlgorithmMismatchError(
                    f"Stored {self.kind.label} public key for {account_id} does not "
                    f"match {record.algorithm}"
                )
            return record.public_key

    def load_local_private_key(self, account_id: str) -> Optional[Tuple[str, bytes]]:
        """Return (algorithm, secret_key) for local use, or None."""
        with self._lock:
            record = self._records.get(account_id)
            if record is None or not record.exists:
                return None
            return record.algorithm, record.secret_key

    def clear_all_keys(
        self,
        account_id: str,
        delete_remote_too: bool = False,
        identity: Optional[str] = None,
    ) -> None:
        """
        Remove the account's pair. Idempotent.

        The algorithm selection is kept so the account can generate again
        or select a different algorithm.

        Args:
            account_id: Account identifier
            delete_remote_too: Also drop this kind's contact cache entry for
                the account's own identity
            identity: Identity used in the contact cache (defaults to account_id)
        """
        with self._account_lock(account_id):
            with self._lock:
                record = self._records.get(account_id)
                had_pair = bool(record and record.exists)
                if record is not None:
                    record.clear()
                self._encrypted_secrets.pop(account_id, None)
                if had_pair:
                    self._save()

        if delete_remote_too:
            self.cache.delete_contact(identity or account_id, self.kind)

        if had_pair:
            logger.info(f"Cleared {self.kind.label} key pair for {account_id}")

    # =========================================================================
    # Remote Public Keys
    # =========================================================================

    def import_remote_public_key(
        self,
        account_id: str,
        contact_identifier: str,
        algorithm: str,
        public_key: bytes,
    ) -> ContactEntry:
        """
        Store a contact's public key of this kind.

        Raises:
            UnsupportedAlgorithmError: If the backend does not know the algorithm
            KeyLengthMismatchError: If the length is wrong (nothing is written)
        """
        entry = self.cache.save_contact(contact_identifier, algorithm, public_key, self.kind)
        logger.info(
            f"Account {account_id} imported {self.kind.label} key for {contact_identifier.lower()}"
        )
        return entry

    def load_remote_public_key(self, contact_identifier: str) -> ContactEntry:
        """
        Raises:
            UnknownContactError: If no key of this kind is cached for the contact
        """
        entry = self.cache.get_contact(contact_identifier, self.kind)
        if entry is None:
            raise UnknownContactError(contact_identifier, self.kind.label)
        return entry

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_algorithm(self, algorithm: Optional[str]) -> None:
        if not self.algorithms.is_allowed(self.kind, algorithm):
            logger.warning(f"{self.kind.label} algorithm not allowed: {algorithm}")
            raise UnsupportedAlgorithmError(algorithm, self.kind.label)
        self.backend.require_enabled(algorithm)

    def _account_lock(self, account_id: str) -> threading.Lock:
        with self._lock:
            lock = self._account_locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._account_locks[account_id] = lock
            return lock

    def _commit(self, account_id: str, algorithm: str, public_key: bytes, secret_key: bytes) -> None:
        """Swap in a complete record and persist it; restore the old one if the write fails."""
        encrypted = (
            self.codec.encrypt(secret_key, self._passphrase) if self.path is not None else None
        )
        with self._lock:
            previous_record = self._records.get(account_id)
            previous_secret = self._encrypted_secrets.get(account_id)

            self._records[account_id] = KeyPairRecord(
                account_id=account_id,
                kind=self.kind,
                algorithm=algorithm,
                public_key=bytes(public_key),
                secret_key=bytes(secret_key),
            )
            if encrypted is not None:
                self._encrypted_secrets[account_id] = encrypted

            try:
                self._save()
            except StorageIOError:
                logger.error(f"Rolled back {self.kind.label} key pair for {account_id}")
                _restore(self._records, account_id, previous_record)
                _restore(self._encrypted_secrets, account_id, previous_secret)
                raise

    def _save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            records = [
                record.to_dict(self._encrypted_secrets.get(account_id))
                for account_id, record in sorted(self._records.items())
            ]
            data = {
                "version": STORE_FORMAT_VERSION,
                "kind": self.kind.value,
                "records": records,
            }
            atomic_write_bytes(self.path, json.dumps(data, indent=2).encode("utf-8"))

    def _load(self) -> None:
        """Read and decrypt the store file."""
        try:
            data = json.loads(read_bytes(self.path).decode("utf-8"))
            if data.get("kind") != self.kind.value:
                raise MalformedPayloadError(
                    f"{self.path} holds {data.get('kind')} keys, expected {self.kind.value}"
                )
            raw_records = data["records"]
        except (UnicodeDecodeError, ValueError, KeyError, AttributeError) as e:
            logger.error(f"Key store {self.path} is malformed")
            raise MalformedPayloadError(f"Key store {self.path} is malformed", e) from e

        records: Dict[str, KeyPairRecord] = {}
        encrypted_secrets: Dict[str, bytes] = {}
        for item in raw_records:
            record, encrypted = KeyPairRecord.from_dict(item)
            if encrypted:
                record.secret_key = self.codec.decrypt(encrypted, self._passphrase)
                encrypted_secrets[record.account_id] = encrypted
            records[record.account_id] = record

        with self._lock:
            self._records = records
            self._encrypted_secrets = encrypted_secrets

        logger.info(f"Loaded {len(records)} {self.kind.label} records from {self.path}")


def _restore(mapping: Dict[str, Any], key: str, previous: Any) -> None:
    if previous is None:
        mapping.pop(key, None)
    else:
        mapping[key] = previous
