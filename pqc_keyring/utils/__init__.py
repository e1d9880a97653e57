"""Utility helpers for the PQC keyring."""

from .files import atomic_write_bytes, read_bytes
from .paths import get_data_dir

__all__ = [
    "atomic_write_bytes",
    "read_bytes",
    "get_data_dir",
]
