"""
Message transports for key announcements.

The protocol never talks to the network; it hands an OutboundMessageRequest
to whichever transport the application injects.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from ..utils.files import atomic_write_bytes
from .models import OutboundMessageRequest

logger = logging.getLogger(__name__)


class MessageTransport(ABC):
    """Delivers outbound key announcements."""

    @abstractmethod
    def send(self, request: OutboundMessageRequest) -> None:
        """Send the request. Failures propagate to the caller."""
        pass


class OutboxTransport(MessageTransport):
    """
    Writes each request as a JSON file into an outbox directory, for a mail
    client or another process to pick up.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.sent: List[Path] = []

    def send(self, request: OutboundMessageRequest) -> None:
        document = {
            "sender": request.sender,
            "recipients": list(request.recipients),
            "subject": request.subject,
            "body_text": request.body_text,
            "headers": dict(request.headers),
            "attachments": [
                {"filename": a.filename, "mime_type": a.mime_type, "content": a.content}
                for a in request.attachments
            ],
        }
        name = f"announcement-{int(time.time() * 1000)}-{len(self.sent)}.json"
        path = atomic_write_bytes(
            self.directory / name, json.dumps(document, indent=2).encode("utf-8")
        )
        self.sent.append(path)
        logger.info(f"Queued key announcement for {len(request.recipients)} recipients at {path}")
