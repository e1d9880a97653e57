"""
PQC Keyring - Key management for post-quantum mail encryption

This package provides:
- Per-kind key stores for classical, PQC signature and PQC KEM key pairs
- Password-based at-rest encryption of exported key bundles
- A contact public-key cache with KEM shared-secret association
- A key distribution protocol announcing public keys to recipients
"""

__version__ = "0.1.0"

from .config import KeyringConfig
from .exceptions import KeyringError
from .keyring import Keyring, create_keyring
from .models import Account, AlgorithmState, KeyKind, KeyPairRecord

__all__ = [
    "Account",
    "AlgorithmState",
    "KeyKind",
    "KeyPairRecord",
    "Keyring",
    "KeyringConfig",
    "KeyringError",
    "create_keyring",
]
