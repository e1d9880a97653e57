"""
ASCII armor for key attachments.

    -----BEGIN <HEADER>-----
    Algorithm: <algorithm>

    <base64 content, 64 columns>
    -----END <HEADER>-----
"""

import base64
import binascii
import re
from typing import Optional

from ..exceptions import MalformedPayloadError

SIGNATURE_HEADER = "PQC SIGNATURE PUBLIC KEY"
KEM_HEADER = "PQC KEM PUBLIC KEY"
CLASSICAL_HEADER = "PGP PUBLIC KEY BLOCK"

LINE_LENGTH = 64

_ALGORITHM_RE = re.compile(r"Algorithm:\s*(.+)")


def armor(key: bytes, header: str, algorithm: str) -> str:
    """Armor raw key bytes."""
    encoded = base64.b64encode(key).decode("ascii")
    lines = [encoded[i:i + LINE_LENGTH] for i in range(0, len(encoded), LINE_LENGTH)]
    return "\n".join(
        [f"-----BEGIN {header}-----", f"Algorithm: {algorithm}", ""]
        + lines
        + [f"-----END {header}-----"]
    )


def extract_algorithm(armored: str) -> Optional[str]:
    """Read the Algorithm header, or None if absent."""
    match = _ALGORITHM_RE.search(armored)
    return match.group(1).strip() if match else None


def extract_content(armored: str, header: str) -> bytes:
    """
    Decode the body of an armored block.

    Raises:
        MalformedPayloadError: If the markers are missing or the body is not base64
    """
    begin = f"-----BEGIN {header}-----"
    end = f"-----END {header}-----"
    start = armored.find(begin)
    stop = armored.find(end, start + len(begin)) if start >= 0 else -1
    if start < 0 or stop < 0:
        raise MalformedPayloadError(f"Missing {header} armor markers")

    body_lines = []
    for line in armored[start + len(begin):stop].splitlines():
        line = line.strip()
        if not line or ":" in line:
            # blank separator or header line
            continue
        body_lines.append(line)

    try:
        return base64.b64decode("".join(body_lines), validate=True)
    except (ValueError, binascii.Error) as e:
        raise MalformedPayloadError(f"{header} body is not valid base64", e) from e
