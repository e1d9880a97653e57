"""Key announcements: compose, send and ingest."""

from .armor import (
    CLASSICAL_HEADER,
    KEM_HEADER,
    SIGNATURE_HEADER,
    armor,
    extract_algorithm,
    extract_content,
)
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
from .protocol import KeyDistributionProtocol
from .transport import MessageTransport, OutboxTransport

__all__ = [
    "KeyDistributionProtocol",
    "KeyDistributionPayload",
    "OutboundMessageRequest",
    "ArmoredAttachment",
    "KeyAttachment",
    "IngestionReport",
    "KeyIngestionError",
    "MessageTransport",
    "OutboxTransport",
    "armor",
    "extract_algorithm",
    "extract_content",
    "CLASSICAL_HEADER",
    "KEM_HEADER",
    "SIGNATURE_HEADER",
    "DEFAULT_BODY",
    "DEFAULT_SUBJECT",
    "DISTRIBUTION_HEADER",
]
