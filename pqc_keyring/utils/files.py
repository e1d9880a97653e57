"""
File helpers for key material.

Writes go to a temporary file in the target directory and are moved into
place with os.replace(), so readers never observe a half-written file.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from ..exceptions import StorageIOError

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Union[str, Path], data: bytes, mode: int = 0o600) -> Path:
    """
    Atomically write bytes to path with restricted permissions.

    Raises:
        StorageIOError: If the directory or file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise StorageIOError(f"Failed to write {path}", "write", e) from e
    return path


def read_bytes(path: Union[str, Path]) -> bytes:
    """
    Read a whole file.

    Raises:
        StorageIOError: If the file is missing or unreadable
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        logger.error(f"Failed to read {path}: {e}")
        raise StorageIOError(f"Failed to read {path}", "read", e) from e
