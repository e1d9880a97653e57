"""
Key Distribution Protocol

Packages an account's public keys into an announcement for one or more
recipients, and consumes announcements received from others.

Outbound:
- The classical key is mandatory; PQC keys are included when present
- Keys travel as armored attachments (pgp-pk.asc, pqc-sig-pk.asc,
  pqc-kem-pk.asc) with X-Key-Distribution: true

Inbound:
- Every announced key is validated and stored per (sender, kind)
- A bad key is recorded in the IngestionReport and skipped; the other keys
  of the announcement are still stored
"""

import base64
import binascii
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..contacts.cache import ContactKeyCache
from ..exceptions import (
    ConfigurationError,
    KeyLengthMismatchError,
    MalformedPayloadError,
    MissingPrerequisiteKeyError,
    UnsupportedAlgorithmError,
)
from ..keystore.registry import KeyStoreRegistry
from ..models import Account, KeyKind
from .armor import armor, extract_algorithm, extract_content
from .models import (
    DEFAULT_BODY,
    DEFAULT_SUBJECT,
    DISTRIBUTION_HEADER,
    ArmoredAttachment,
    IngestionReport,
    KeyAttachment,
    KeyDistributionPayload,
    KeyIngestionError,
    OutboundMessageRequest,
)
from .transport import MessageTransport

logger = logging.getLogger(__name__)

PayloadInput = Union[KeyDistributionPayload, Dict[str, Any], str, bytes]

# Attachment order of outbound messages
_ATTACHMENT_ORDER = [KeyAttachment.PQC_SIG, KeyAttachment.PQC_KEM, KeyAttachment.PGP]


class KeyDistributionProtocol:
    """
    Composes and ingests key announcements.

    Usage:
        protocol = KeyDistributionProtocol(registry, cache, transport)
        protocol.send_announcement(account, ["bob@example.com"])
        report = protocol.ingest_announcement(received_payload)
    """

    def __init__(
        self,
        registry: KeyStoreRegistry,
        cache: ContactKeyCache,
        transport: Optional[MessageTransport] = None,
    ):
        self.registry = registry
        self.cache = cache
        self.transport = transport

    # =========================================================================
    # Outbound
    # =========================================================================

    def build_payload(
        self,
        account: Account,
        subject: Optional[str] = None,
        body_text: Optional[str] = None,
    ) -> KeyDistributionPayload:
        """
        Collect the account's public keys.

        Raises:
            MissingPrerequisiteKeyError: If the account has no classical pair
        """
        classical = self.registry.get(KeyKind.CLASSICAL)
        classical_key = classical.export_public_key(account.account_id)
        if classical_key is None:
            logger.warning(f"Account {account.account_id} has no classical key to announce")
            raise MissingPrerequisiteKeyError(account.account_id, KeyKind.CLASSICAL.label)

        payload = KeyDistributionPayload(
            sender_identity=account.email,
            classical_public_key=classical_key,
            classical_algorithm=classical.selected_algorithm(account.account_id),
            subject=subject or DEFAULT_SUBJECT,
            body_text=body_text if body_text is not None else DEFAULT_BODY,
        )

        for kind in (KeyKind.PQC_SIGNATURE, KeyKind.PQC_KEM):
            if kind not in self.registry:
                continue
            store = self.registry.get(kind)
            if not store.has_own_key_pair(account.account_id):
                continue
            public_key = store.export_public_key(account.account_id)
            algorithm = store.selected_algorithm(account.account_id)
            if kind == KeyKind.PQC_SIGNATURE:
                payload.pqc_signature_public_key = public_key
                payload.pqc_signature_algorithm = algorithm
            else:
                payload.pqc_kem_public_key = public_key
                payload.pqc_kem_algorithm = algorithm

        return payload

    def compose_announcement(
        self,
        account: Account,
        recipients: List[str],
        subject: Optional[str] = None,
        body_text: Optional[str] = None,
    ) -> OutboundMessageRequest:
        """
        Build the outbound message announcing the account's public keys.

        Raises:
            ValueError: If there are no recipients
            MissingPrerequisiteKeyError: If the account has no classical pair
        """
        recipients = [r.strip() for r in recipients or [] if r and r.strip()]
        if not recipients:
            raise ValueError("At least one recipient is required")

        payload = self.build_payload(account, subject, body_text)

        headers = {DISTRIBUTION_HEADER: "true"}
        attachments: List[ArmoredAttachment] = []
        slots = {kind: (algorithm, key) for kind, algorithm, key in payload.keys()}

        for attachment in _ATTACHMENT_ORDER:
            algorithm, key = slots[attachment.kind]
            if key is None:
                continue
            attachments.append(
                ArmoredAttachment(
                    filename=attachment.filename,
                    content=armor(key, attachment.armor_header, algorithm),
                    mime_type=attachment.mime_type,
                )
            )
            if attachment.algorithm_header:
                headers[attachment.algorithm_header] = algorithm

        logger.info(
            f"Composed key announcement from {account.email} with "
            f"{len(attachments)} keys for {len(recipients)} recipients"
        )
        return OutboundMessageRequest(
            sender=account.email,
            recipients=recipients,
            subject=payload.subject,
            body_text=payload.body_text,
            attachments=attachments,
            headers=headers,
            payload=payload,
        )

    def send_announcement(
        self,
        account: Account,
        recipients: List[str],
        subject: Optional[str] = None,
        body_text: Optional[str] = None,
    ) -> OutboundMessageRequest:
        """Compose an announcement and hand it to the transport."""
        if self.transport is None:
            raise ConfigurationError("No message transport configured")

        request = self.compose_announcement(account, recipients, subject, body_text)
        self.transport.send(request)
        logger.info(f"Sent key announcement from {account.email}")
        return request

    # =========================================================================
    # Inbound
    # =========================================================================

    def ingest_announcement(self, payload: PayloadInput) -> IngestionReport:
        """
        Store the keys of a received announcement.

        Raises:
            MalformedPayloadError: If the payload cannot be parsed or has no sender
        """
        payload = self._coerce_payload(payload)
        sender = payload.sender_identity
        report = IngestionReport(sender=sender.lower())

        for kind, algorithm, public_key in payload.keys():
            if kind in payload.decode_errors:
                self._skip(report, kind, payload.decode_errors[kind])
                continue
            if public_key is None:
                if kind == KeyKind.CLASSICAL:
                    self._skip(report, kind, "Announcement has no classical key")
                continue
            if not algorithm:
                self._skip(report, kind, "Key has no algorithm")
                continue

            try:
                self.cache.save_contact(sender, algorithm, public_key, kind)
            except (KeyLengthMismatchError, UnsupportedAlgorithmError) as e:
                self._skip(report, kind, str(e))
                continue
            report.stored.append((kind, algorithm))

        logger.info(
            f"Ingested announcement from {report.sender}: "
            f"{len(report.stored)} stored, {len(report.errors)} skipped"
        )
        return report

    def ingest_attachments(
        self,
        sender: str,
        attachments: Union[Mapping[str, str], Iterable[ArmoredAttachment]],
    ) -> IngestionReport:
        """
        Store the keys found in a received message's attachments.

        Attachments are identified by filename; unknown files are ignored.

        Args:
            sender: Sender address of the message
            attachments: filename -> text, or ArmoredAttachment objects
        """
        if isinstance(attachments, Mapping):
            items = list(attachments.items())
        else:
            items = [(a.filename, a.content) for a in attachments]

        payload = KeyDistributionPayload(
            sender_identity=sender,
            classical_public_key=None,
            classical_algorithm=None,
        )
        for filename, content in items:
            attachment = KeyAttachment.for_filename(filename)
            if attachment is None:
                continue
            try:
                algorithm, key = self._read_attachment(attachment, content)
            except MalformedPayloadError as e:
                payload.decode_errors[attachment.kind] = str(e)
                continue

            if attachment.kind == KeyKind.CLASSICAL:
                payload.classical_public_key = key
                payload.classical_algorithm = algorithm
            elif attachment.kind == KeyKind.PQC_SIGNATURE:
                payload.pqc_signature_public_key = key
                payload.pqc_signature_algorithm = algorithm
            else:
                payload.pqc_kem_public_key = key
                payload.pqc_kem_algorithm = algorithm

        return self.ingest_announcement(payload)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _read_attachment(attachment: KeyAttachment, content: Union[str, bytes]):
        if isinstance(content, bytes):
            content = content.decode("ascii", errors="replace")
        if "-----BEGIN" not in content:
            # Attachment body still transfer-encoded
            try:
                content = base64.b64decode("".join(content.split()), validate=True).decode(
                    "ascii", errors="replace"
                )
            except (ValueError, binascii.Error) as e:
                raise MalformedPayloadError(f"{attachment.filename} is not armored", e) from e

        algorithm = extract_algorithm(content)
        if not algorithm:
            raise MalformedPayloadError(f"{attachment.filename} has no Algorithm header")
        return algorithm, extract_content(content, attachment.armor_header)

    @staticmethod
    def _coerce_payload(payload: PayloadInput) -> KeyDistributionPayload:
        if isinstance(payload, KeyDistributionPayload):
            if not payload.sender_identity:
                raise MalformedPayloadError("Payload has no sender identity")
            return payload
        if isinstance(payload, dict):
            return KeyDistributionPayload.from_dict(payload)
        if isinstance(payload, (str, bytes)):
            return KeyDistributionPayload.from_json(payload)
        raise MalformedPayloadError(f"Unsupported payload type: {type(payload).__name__}")

    @staticmethod
    def _skip(report: IngestionReport, kind: KeyKind, reason: str) -> None:
        logger.warning(f"Skipped {kind.label} key from {report.sender}: {reason}")
        report.errors.append(KeyIngestionError(kind=kind, reason=reason))
