"""
Classical Key Backend

RSA, Ed25519 and X25519 key pairs via the cryptography library. These keys
provide backward compatibility with recipients that do not speak PQC and are
the mandatory part of every key announcement.

Encodings:
- Secret key: PKCS#8 DER, unencrypted (the key store encrypts at rest)
- RSA public key: SubjectPublicKeyInfo DER
- Ed25519 / X25519 public key: raw 32 bytes

Signatures: Ed25519, and RSA PKCS#1 v1.5 over SHA-512. X25519 keys cannot sign.
"""

import logging
from typing import Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, padding, rsa, x25519

from ..exceptions import AlgorithmMismatchError, UnsupportedAlgorithmError
from ..models import KeyKind
from .base import AlgorithmBackend

logger = logging.getLogger(__name__)


# Public key lengths for the encodings above
CLASSICAL_PUBLIC_KEY_LENGTHS: Dict[str, int] = {
    "RSA-2048": 294,
    "RSA-4096": 550,
    "Ed25519": 32,
    "X25519": 32,
}

_RSA_BITS = {"RSA-2048": 2048, "RSA-4096": 4096}

SIGNING_ALGORITHMS = ("RSA-2048", "RSA-4096", "Ed25519")


class ClassicalBackend(AlgorithmBackend):
    """Classical asymmetric keys backed by the cryptography library."""

    kind = KeyKind.CLASSICAL

    def __init__(self, enabled: Optional[List[str]] = None):
        self._enabled = set(enabled) if enabled is not None else set(CLASSICAL_PUBLIC_KEY_LENGTHS)

    def supported_algorithms(self) -> List[str]:
        return list(CLASSICAL_PUBLIC_KEY_LENGTHS)

    def is_algorithm_enabled(self, algorithm: str) -> bool:
        return algorithm in CLASSICAL_PUBLIC_KEY_LENGTHS and algorithm in self._enabled

    def expected_public_key_length(self, algorithm: str) -> int:
        length = CLASSICAL_PUBLIC_KEY_LENGTHS.get(algorithm)
        if length is None:
            raise UnsupportedAlgorithmError(algorithm, self.kind.label)
        return length

    def generate_keypair(self, algorithm: str) -> Tuple[bytes, bytes]:
        """Generate a classical key pair."""
        self.require_enabled(algorithm)

        if algorithm in _RSA_BITS:
            private_key = rsa.generate_private_key(
                public_exponent=65537,
                key_size=_RSA_BITS[algorithm],
            )
        elif algorithm == "Ed25519":
            private_key = ed25519.Ed25519PrivateKey.generate()
        else:
            private_key = x25519.X25519PrivateKey.generate()

        secret_key = private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return self._encode_public(algorithm, private_key.public_key()), secret_key

    def export_public_key(self, algorithm: str, secret_key: bytes) -> bytes:
        """Derive the public key from a PKCS#8 secret key."""
        return self._encode_public(algorithm, self._load_private(algorithm, secret_key).public_key())

    # =========================================================================
    # Signatures
    # =========================================================================

    def sign(self, algorithm: str, secret_key: bytes, data: bytes) -> bytes:
        """
        Sign data with a classical secret key.

        Raises:
            UnsupportedAlgorithmError: If the algorithm cannot sign
            AlgorithmMismatchError: If the secret key does not fit the algorithm
        """
        self._require_signing(algorithm)
        private_key = self._load_private(algorithm, secret_key)
        if algorithm == "Ed25519":
            return private_key.sign(data)
        return private_key.sign(data, padding.PKCS1v15(), hashes.SHA512())

    def verify(self, algorithm: str, public_key: bytes, data: bytes, signature: bytes) -> bool:
        """Check a classical signature. Malformed keys or signatures are invalid."""
        self._require_signing(algorithm)
        try:
            if algorithm == "Ed25519":
                ed25519.Ed25519PublicKey.from_public_bytes(public_key).verify(signature, data)
            else:
                key = serialization.load_der_public_key(public_key)
                if not isinstance(key, rsa.RSAPublicKey):
                    return False
                key.verify(signature, data, padding.PKCS1v15(), hashes.SHA512())
        except (InvalidSignature, ValueError) as e:
            logger.warning(f"{algorithm} signature rejected: {type(e).__name__}")
            return False
        return True

    def _require_signing(self, algorithm: str) -> None:
        self.require_enabled(algorithm)
        if algorithm not in SIGNING_ALGORITHMS:
            raise UnsupportedAlgorithmError(algorithm, "signing")

    def _load_private(self, algorithm: str, secret_key: bytes):
        if algorithm not in CLASSICAL_PUBLIC_KEY_LENGTHS:
            raise UnsupportedAlgorithmError(algorithm, self.kind.label)

        try:
            private_key = serialization.load_der_private_key(secret_key, password=None)
        except (ValueError, TypeError) as e:
            raise AlgorithmMismatchError(
                f"Secret key is not a valid {algorithm} key", e
            ) from e

        expected_type = {
            "Ed25519": ed25519.Ed25519PrivateKey,
            "X25519": x25519.X25519PrivateKey,
        }.get(algorithm, rsa.RSAPrivateKey)
        if not isinstance(private_key, expected_type):
            raise AlgorithmMismatchError(f"Secret key is not a valid {algorithm} key")
        if algorithm in _RSA_BITS and private_key.key_size != _RSA_BITS[algorithm]:
            raise AlgorithmMismatchError(
                f"RSA key size {private_key.key_size} does not match {algorithm}"
            )
        return private_key

    @staticmethod
    def _encode_public(algorithm: str, public_key) -> bytes:
        if algorithm in _RSA_BITS:
            return public_key.public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        return public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
