"""
Keyring Models

Key kinds, accounts, own key pair records and the algorithm selection state.
"""

import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .exceptions import MalformedPayloadError


class KeyKind(str, Enum):
    """
    Kind of key pair an account can hold.

    CLASSICAL:     Backward-compatible asymmetric key (RSA / Ed25519 / X25519)
    PQC_SIGNATURE: Post-quantum signature key (Dilithium / ML-DSA / Falcon)
    PQC_KEM:       Post-quantum key encapsulation key (Kyber / ML-KEM)
    """

    CLASSICAL = "classical"
    PQC_SIGNATURE = "pqc_sig"
    PQC_KEM = "pqc_kem"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    KeyKind.CLASSICAL: "classical",
    KeyKind.PQC_SIGNATURE: "PQC signature",
    KeyKind.PQC_KEM: "PQC KEM",
}


class AlgorithmState(str, Enum):
    """Algorithm selection state of one (account, kind) slot."""

    NO_ALGORITHM = "no_algorithm"
    ALGORITHM_SELECTED = "algorithm_selected"
    KEY_PAIR_PRESENT = "key_pair_present"


@dataclass
class KeyPairRecord:
    """Own key pair of one account for one key kind."""

    account_id: str
    kind: KeyKind
    algorithm: Optional[str] = None
    public_key: Optional[bytes] = None
    secret_key: Optional[bytes] = None

    @property
    def exists(self) -> bool:
        return bool(self.public_key) and bool(self.secret_key)

    @property
    def state(self) -> AlgorithmState:
        if self.exists:
            return AlgorithmState.KEY_PAIR_PRESENT
        if self.algorithm:
            return AlgorithmState.ALGORITHM_SELECTED
        return AlgorithmState.NO_ALGORITHM

    def clear(self) -> None:
        """Drop key material, keeping the algorithm selection."""
        self.public_key = None
        self.secret_key = None

    def to_dict(self, encrypted_secret: Optional[bytes] = None) -> Dict[str, Any]:
        """
        Serialize for the local store.

        The secret key is only ever written in its encrypted form; pass the
        EncryptedBlob produced by KeyCodec.encrypt().
        """
        return {
            "account_id": self.account_id,
            "kind": self.kind.value,
            "algorithm": self.algorithm,
            "public_key": base64.b64encode(self.public_key).decode() if self.public_key else None,
            "secret_key": (
                base64.b64encode(encrypted_secret).decode() if encrypted_secret else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Tuple["KeyPairRecord", Optional[bytes]]:
        """
        Create from dictionary.

        Returns:
            Tuple of (record without secret key, encrypted secret or None)
        """
        try:
            public_key = data.get("public_key")
            secret_key = data.get("secret_key")
            record = cls(
                account_id=data["account_id"],
                kind=KeyKind(data["kind"]),
                algorithm=data.get("algorithm"),
                public_key=base64.b64decode(public_key, validate=True) if public_key else None,
            )
            encrypted = base64.b64decode(secret_key, validate=True) if secret_key else None
        except (AttributeError, KeyError, TypeError, ValueError, binascii.Error) as e:
            raise MalformedPayloadError(f"Invalid key pair record: {e}", e) from e
        return record, encrypted


@dataclass
class Account:
    """A mail account that owns a key set."""

    account_id: str
    email: str
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.email
