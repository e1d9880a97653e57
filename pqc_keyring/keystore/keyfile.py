"""
Key Files (.pqk)

Export and import of key bundles as files.

File content is either plaintext JSON:

    {"version": 1, "email": ..., "algorithm": ..., "<field>": b64[, "privateKey": b64]}

or an EncryptedBlob (KeyCodec) wrapping that JSON when a password is given.
<field> names the key kind:

    pqc_kem_publicKey -> PQC KEM
    pqc_sig_publicKey -> PQC signature
    pgp_publicKey     -> classical
    publicKey         -> generic; kind resolved from the algorithm

Files written by older clients carry no version and may use the generic
field; import sniffs the fields in the order above.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from ..crypto.codec import KeyCodec
from ..exceptions import (
    DecryptionError,
    MalformedPayloadError,
    MissingPrerequisiteKeyError,
    WeakInputError,
)
from ..models import Account, KeyKind
from ..utils.files import atomic_write_bytes, read_bytes
from .registry import KeyStoreRegistry

logger = logging.getLogger(__name__)

KEY_FILE_EXTENSION = ".pqk"
KEY_FILE_VERSION = 1

PUBLIC_KEY_FIELDS = {
    KeyKind.PQC_KEM: "pqc_kem_publicKey",
    KeyKind.PQC_SIGNATURE: "pqc_sig_publicKey",
    KeyKind.CLASSICAL: "pgp_publicKey",
}
GENERIC_PUBLIC_KEY_FIELD = "publicKey"
PRIVATE_KEY_FIELD = "privateKey"

# Import sniffing priority
_SNIFF_ORDER = [KeyKind.PQC_KEM, KeyKind.PQC_SIGNATURE, KeyKind.CLASSICAL]


@dataclass
class KeyFileImportResult:
    """What an imported key file turned into."""

    kind: KeyKind
    algorithm: str
    email: str
    own_key_pair: bool


class KeyFileService:
    """
    Reads and writes .pqk files against the key stores.

    Usage:
        service = KeyFileService(registry, codec)
        service.export_key_file(path, account, KeyKind.PQC_KEM, password="secret-pass")
        service.import_key_file(path, "acct-2", password="secret-pass")
    """

    def __init__(self, registry: KeyStoreRegistry, codec: KeyCodec):
        self.registry = registry
        self.codec = codec

    # =========================================================================
    # Export
    # =========================================================================

    def encode_bundle(
        self,
        account: Account,
        kind: KeyKind,
        password: Optional[str] = None,
        include_private_key: bool = False,
    ) -> bytes:
        """
        Build file content for the account's key of one kind.

        Raises:
            WeakInputError: If the private key is requested without a password
            MissingPrerequisiteKeyError: If the account has no pair of that kind
        """
        if include_private_key and not password:
            raise WeakInputError("A password is required to export a private key")

        store = self.registry.get(kind)
        public_key = store.export_public_key(account.account_id)
        if public_key is None:
            raise MissingPrerequisiteKeyError(account.account_id, kind.label)

        bundle: Dict[str, Any] = {
            "version": KEY_FILE_VERSION,
            "email": account.email,
            "algorithm": store.selected_algorithm(account.account_id),
            PUBLIC_KEY_FIELDS[kind]: base64.b64encode(public_key).decode(),
        }
        if include_private_key:
            _, secret_key = store.load_local_private_key(account.account_id)
            bundle[PRIVATE_KEY_FIELD] = base64.b64encode(secret_key).decode()

        content = json.dumps(bundle, indent=2).encode("utf-8")
        if password:
            return self.codec.encrypt(content, password)
        return content

    def export_key_file(
        self,
        path: Union[str, Path],
        account: Account,
        kind: KeyKind,
        password: Optional[str] = None,
        include_private_key: bool = False,
    ) -> Path:
        """Write a .pqk file (mode 0600)."""
        content = self.encode_bundle(account, kind, password, include_private_key)
        written = atomic_write_bytes(path, content)
        logger.info(
            f"Exported {kind.label} key of {account.account_id} to {written} "
            f"(encrypted={bool(password)}, private={include_private_key})"
        )
        return written

    # =========================================================================
    # Import
    # =========================================================================

    def decode_bundle(self, content: bytes, password: Optional[str] = None) -> Dict[str, Any]:
        """
        Turn file content into the bundle dictionary.

        Raises:
            WeakInputError: If the content is encrypted and no password was given
            DecryptionError: If the password is wrong or the blob is corrupted
            MalformedPayloadError: If plaintext content is not a JSON object
        """
        if _looks_like_json(content):
            bundle = _parse_json_object(content)
            if bundle is None:
                logger.warning("Rejected plaintext key file that is not a JSON object")
                raise MalformedPayloadError("Key file is not a JSON object")
        else:
            if not password:
                raise WeakInputError("Key file is encrypted; a password is required")
            bundle = _parse_json_object(self.codec.decrypt(content, password))
            if bundle is None:
                # Unauthenticated CBC: a wrong password can still unpad cleanly
                raise DecryptionError()

        version = bundle.get("version", KEY_FILE_VERSION)
        if version != KEY_FILE_VERSION:
            raise MalformedPayloadError(f"Unsupported key file version: {version}")
        return bundle

    def sniff_kind(self, bundle: Dict[str, Any]) -> Tuple[KeyKind, str]:
        """
        Determine the key kind and the field holding the public key.

        Raises:
            MalformedPayloadError: If no known public key field is present
        """
        for kind in _SNIFF_ORDER:
            field_name = PUBLIC_KEY_FIELDS[kind]
            if field_name in bundle:
                return kind, field_name

        if GENERIC_PUBLIC_KEY_FIELD in bundle:
            kind = self.registry.kind_for_algorithm(bundle.get("algorithm") or "")
            return kind or KeyKind.PQC_KEM, GENERIC_PUBLIC_KEY_FIELD

        raise MalformedPayloadError("Key file contains no known public key field")

    def import_bundle(
        self,
        content: bytes,
        account_id: str,
        password: Optional[str] = None,
    ) -> KeyFileImportResult:
        """
        Import file content.

        With a private key the pair becomes the account's own pair of the
        sniffed kind; without one the public key is stored for `email`.
        """
        bundle = self.decode_bundle(content, password)
        kind, field_name = self.sniff_kind(bundle)

        email = bundle.get("email")
        algorithm = bundle.get("algorithm")
        if not isinstance(email, str) or not email:
            raise MalformedPayloadError("Key file has no email")
        if not isinstance(algorithm, str) or not algorithm:
            raise MalformedPayloadError("Key file has no algorithm")

        public_key = _b64_field(bundle, field_name)
        store = self.registry.get(kind)

        if bundle.get(PRIVATE_KEY_FIELD):
            secret_key = _b64_field(bundle, PRIVATE_KEY_FIELD)
            store.import_own_key_pair(account_id, algorithm, public_key, secret_key)
            own = True
        else:
            store.import_remote_public_key(account_id, email, algorithm, public_key)
            own = False

        logger.info(
            f"Imported {kind.label} key file for {email.lower()} into {account_id} (own={own})"
        )
        return KeyFileImportResult(kind=kind, algorithm=algorithm, email=email, own_key_pair=own)

    def import_key_file(
        self,
        path: Union[str, Path],
        account_id: str,
        password: Optional[str] = None,
    ) -> KeyFileImportResult:
        """
        Import a .pqk file.

        Raises:
            StorageIOError: If the file is missing or unreadable
        """
        return self.import_bundle(read_bytes(path), account_id, password)


def _looks_like_json(content: bytes) -> bool:
    """Plaintext bundles are UTF-8 text starting with an object or array."""
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return text.lstrip().startswith(("{", "["))


def _parse_json_object(content: bytes) -> Optional[Dict[str, Any]]:
    """Return the JSON object in content, or None if it is not JSON."""
    try:
        data = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _b64_field(bundle: Dict[str, Any], field_name: str) -> bytes:
    value = bundle.get(field_name)
    if not isinstance(value, str):
        raise MalformedPayloadError(f"Key file field {field_name} is not a string")
    try:
        # MIME-style exports wrap lines
        return base64.b64decode("".join(value.split()), validate=True)
    except (ValueError, binascii.Error) as e:
        raise MalformedPayloadError(f"Key file field {field_name} is not valid base64", e) from e
