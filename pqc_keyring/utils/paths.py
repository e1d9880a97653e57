"""
Configurable paths for the PQC keyring.

All file-system locations are routed through get_data_dir(), which respects:

  1. PQC_KEYRING_DATA_DIR  (explicit override)
  2. XDG_DATA_HOME         (XDG fallback)
  3. ~/.local/share/pqc-keyring (default)
"""

import os
from pathlib import Path


def get_data_dir() -> Path:
    """Return the keyring data directory, configurable via env var."""
    data_dir = os.environ.get("PQC_KEYRING_DATA_DIR")
    if data_dir:
        return Path(data_dir)
    xdg_data = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    return Path(xdg_data) / "pqc-keyring"
