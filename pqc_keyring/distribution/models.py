"""
Key Distribution Models

Announcement payloads, outbound message requests and ingestion reports.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..exceptions import MalformedPayloadError
from ..models import KeyKind
from .armor import CLASSICAL_HEADER, KEM_HEADER, SIGNATURE_HEADER

DISTRIBUTION_HEADER = "X-Key-Distribution"
DEFAULT_SUBJECT = "Key Distribution"
DEFAULT_BODY = "Attached are the public keys."


class KeyAttachment(str, Enum):
    """Key attachment slots of a distribution message."""

    PQC_SIG = "pqc-sig-pk.asc"
    PQC_KEM = "pqc-kem-pk.asc"
    PGP = "pgp-pk.asc"

    @property
    def filename(self) -> str:
        return self.value

    @property
    def kind(self) -> KeyKind:
        return _ATTACHMENT_META[self][0]

    @property
    def algorithm_header(self) -> Optional[str]:
        return _ATTACHMENT_META[self][1]

    @property
    def mime_type(self) -> str:
        return _ATTACHMENT_META[self][2]

    @property
    def armor_header(self) -> str:
        return _ATTACHMENT_META[self][3]

    @classmethod
    def for_kind(cls, kind: KeyKind) -> "KeyAttachment":
        for attachment in cls:
            if attachment.kind == kind:
                return attachment
        raise ValueError(f"No attachment for {kind}")

    @classmethod
    def for_filename(cls, filename: str) -> Optional["KeyAttachment"]:
        name = (filename or "").lower()
        for attachment in cls:
            if attachment.value == name:
                return attachment
        return None


_ATTACHMENT_META = {
    KeyAttachment.PQC_SIG: (
        KeyKind.PQC_SIGNATURE,
        "X-Key-Sig-Algorithm",
        "application/octet-stream",
        SIGNATURE_HEADER,
    ),
    KeyAttachment.PQC_KEM: (
        KeyKind.PQC_KEM,
        "X-Key-Kem-Algorithm",
        "application/octet-stream",
        KEM_HEADER,
    ),
    KeyAttachment.PGP: (KeyKind.CLASSICAL, None, "application/pgp-keys", CLASSICAL_HEADER),
}


# =============================================================================
# Payload
# =============================================================================


def _b64(value: Optional[bytes]) -> Optional[str]:
    return base64.b64encode(value).decode() if value is not None else None


def _unb64(data: Dict[str, Any], key: str) -> Optional[bytes]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedPayloadError(f"Payload field {key} is not a string")
    try:
        return base64.b64decode(value, validate=True)
    except (ValueError, binascii.Error) as e:
        raise MalformedPayloadError(f"Payload field {key} is not valid base64", e) from e


_KEY_FIELDS = {
    KeyKind.CLASSICAL: "classical_public_key",
    KeyKind.PQC_SIGNATURE: "pqc_signature_public_key",
    KeyKind.PQC_KEM: "pqc_kem_public_key",
}


@dataclass
class KeyDistributionPayload:
    """Public keys announced by one sender. The classical key is mandatory."""

    sender_identity: str
    classical_public_key: Optional[bytes]
    classical_algorithm: Optional[str]
    pqc_signature_public_key: Optional[bytes] = None
    pqc_signature_algorithm: Optional[str] = None
    pqc_kem_public_key: Optional[bytes] = None
    pqc_kem_algorithm: Optional[str] = None
    subject: str = DEFAULT_SUBJECT
    body_text: Optional[str] = None
    # Fields that could not be decoded when parsed (not serialized)
    decode_errors: Dict[KeyKind, str] = field(default_factory=dict)

    def keys(self) -> List[Tuple[KeyKind, Optional[str], Optional[bytes]]]:
        """(kind, algorithm, public key) for every slot, present or not."""
        return [
            (KeyKind.CLASSICAL, self.classical_algorithm, self.classical_public_key),
            (KeyKind.PQC_SIGNATURE, self.pqc_signature_algorithm, self.pqc_signature_public_key),
            (KeyKind.PQC_KEM, self.pqc_kem_algorithm, self.pqc_kem_public_key),
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (keys base64-encoded)."""
        return {
            "sender_identity": self.sender_identity,
            "classical_public_key": _b64(self.classical_public_key),
            "classical_algorithm": self.classical_algorithm,
            "pqc_signature_public_key": _b64(self.pqc_signature_public_key),
            "pqc_signature_algorithm": self.pqc_signature_algorithm,
            "pqc_kem_public_key": _b64(self.pqc_kem_public_key),
            "pqc_kem_algorithm": self.pqc_kem_algorithm,
            "subject": self.subject,
            "body_text": self.body_text,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyDistributionPayload":
        """
        Create from dictionary.

        Only a missing sender fails here. Undecodable keys are left out and
        noted in decode_errors, so one bad key does not discard the others.

        Raises:
            MalformedPayloadError: If the sender is missing
        """
        sender = data.get("sender_identity")
        if not isinstance(sender, str) or not sender:
            raise MalformedPayloadError("Payload has no sender identity")

        keys: Dict[KeyKind, Optional[bytes]] = {}
        decode_errors: Dict[KeyKind, str] = {}
        for kind, field_name in _KEY_FIELDS.items():
            try:
                keys[kind] = _unb64(data, field_name)
            except MalformedPayloadError as e:
                keys[kind] = None
                decode_errors[kind] = str(e)

        return cls(
            sender_identity=sender,
            classical_public_key=keys[KeyKind.CLASSICAL],
            classical_algorithm=data.get("classical_algorithm"),
            pqc_signature_public_key=keys[KeyKind.PQC_SIGNATURE],
            pqc_signature_algorithm=data.get("pqc_signature_algorithm"),
            pqc_kem_public_key=keys[KeyKind.PQC_KEM],
            pqc_kem_algorithm=data.get("pqc_kem_algorithm"),
            subject=data.get("subject") or DEFAULT_SUBJECT,
            body_text=data.get("body_text"),
            decode_errors=decode_errors,
        )

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> "KeyDistributionPayload":
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise MalformedPayloadError("Payload is not valid JSON", e) from e
        if not isinstance(data, dict):
            raise MalformedPayloadError("Payload must be a JSON object")
        return cls.from_dict(data)


# =============================================================================
# Outbound Message
# =============================================================================


@dataclass
class ArmoredAttachment:
    """One armored key attachment."""

    filename: str
    content: str
    mime_type: str


@dataclass
class OutboundMessageRequest:
    """Everything the transport needs to send a key announcement."""

    sender: str
    recipients: List[str]
    subject: str
    body_text: str
    attachments: List[ArmoredAttachment] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    payload: Optional[KeyDistributionPayload] = None

    def attachment(self, filename: str) -> Optional[ArmoredAttachment]:
        for attachment in self.attachments:
            if attachment.filename == filename:
                return attachment
        return None


# =============================================================================
# Ingestion
# =============================================================================


@dataclass
class KeyIngestionError:
    """A key that was skipped during ingestion."""

    kind: KeyKind
    reason: str


@dataclass
class IngestionReport:
    """Outcome of ingesting one announcement."""

    sender: str
    stored: List[Tuple[KeyKind, str]] = field(default_factory=list)
    errors: List[KeyIngestionError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.stored) and not self.errors

    def stored_kinds(self) -> List[KeyKind]:
        return [kind for kind, _ in self.stored]
