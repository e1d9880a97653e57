"""
Own key pairs per key kind, key files and account-wide key operations.
"""

from .keyfile import KEY_FILE_EXTENSION, KeyFileImportResult, KeyFileService
from .registry import KeyStoreRegistry
from .service import KeyService
from .store import KeyStore

__all__ = [
    "KeyStore",
    "KeyStoreRegistry",
    "KeyService",
    "KeyFileService",
    "KeyFileImportResult",
    "KEY_FILE_EXTENSION",
]
