"""
KEM Exchange

Establishes a shared working key with a contact through their PQC KEM key and
attaches it to the contact's cache entry.

    sender:    ciphertext, raw = encapsulate(contact_pk)
               key = HKDF-SHA256(raw, info, 32)
    recipient: raw = decapsulate(own_sk, ciphertext)
               key = HKDF-SHA256(raw, info, 32)
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..backends.base import KemBackend
from ..crypto.codec import KeyCodec
from ..exceptions import MissingPrerequisiteKeyError, UnknownContactError
from ..models import KeyKind
from .cache import ContactKeyCache

if TYPE_CHECKING:
    from ..keystore.store import KeyStore

logger = logging.getLogger(__name__)

DEFAULT_KEM_INFO = "pqc-keyring-kem-v1"
SHARED_KEY_LENGTH = 32


class KemExchange:
    """
    Encapsulation to contacts and decapsulation from them.

    Args:
        backend: KEM backend
        cache: Contact cache holding the contacts' KEM keys
        kem_store: Key store of kind PQC_KEM (own secret keys)
        info: HKDF context string
    """

    def __init__(
        self,
        backend: KemBackend,
        cache: ContactKeyCache,
        kem_store: "KeyStore",
        info: str = DEFAULT_KEM_INFO,
    ):
        self.backend = backend
        self.cache = cache
        self.kem_store = kem_store
        self.info = info

    def derive_shared_key(self, raw_secret: bytes, info: Optional[str] = None) -> bytes:
        return KeyCodec.hkdf_expand(raw_secret, info or self.info, SHARED_KEY_LENGTH)

    def encapsulate_for(self, identifier: str) -> bytes:
        """
        Encapsulate a fresh secret to a contact.

        Returns:
            KEM ciphertext to send to the contact

        Raises:
            UnknownContactError: If the contact has no cached KEM key
        """
        entry = self.cache.get_contact(identifier, KeyKind.PQC_KEM)
        if entry is None:
            raise UnknownContactError(identifier, KeyKind.PQC_KEM.label)

        ciphertext, raw_secret = self.backend.encapsulate(entry.algorithm, entry.public_key)
        self.cache.save_shared_secret(identifier, self.derive_shared_key(raw_secret))

        logger.info(f"Encapsulated {entry.algorithm} shared key for {identifier.lower()}")
        return ciphertext

    def decapsulate_from(self, account_id: str, identifier: str, ciphertext: bytes) -> bytes:
        """
        Recover the shared key a contact encapsulated to this account.

        The key is attached to the sender's cache entry.

        Returns:
            Derived shared key

        Raises:
            MissingPrerequisiteKeyError: If the account has no KEM key pair
            UnknownContactError: If the sender has no cached KEM key
            DecryptionError: If the ciphertext is invalid for the algorithm
        """
        own = self.kem_store.load_local_private_key(account_id)
        if own is None:
            raise MissingPrerequisiteKeyError(account_id, KeyKind.PQC_KEM.label)
        if self.cache.get_contact(identifier, KeyKind.PQC_KEM) is None:
            raise UnknownContactError(identifier, KeyKind.PQC_KEM.label)
        algorithm, secret_key = own

        shared_key = self.derive_shared_key(
            self.backend.decapsulate(algorithm, secret_key, ciphertext)
        )
        self.cache.save_shared_secret(identifier, shared_key)

        logger.info(f"Decapsulated {algorithm} shared key from {identifier.lower()}")
        return shared_key
