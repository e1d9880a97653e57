"""
Mock PQC Backends (for testing)

Produce keys, ciphertexts and shared secrets of the published sizes without
any lattice math. Public keys are derived from a 32-byte seed stored at the
front of the secret key, so export and decapsulation work offline.

WARNING: NOT cryptographically secure. Disabled in production mode
(PQC_KEYRING_PRODUCTION=1).
"""

import hashlib
import hmac
import logging
import secrets
from typing import List, Optional, Tuple

from ..config import is_production_mode
from ..exceptions import BackendUnavailableError, DecryptionError
from .base import KEM_PARAMS, SIG_PARAMS, KemBackend, SignatureBackend, lookup_params

logger = logging.getLogger(__name__)

SEED_LENGTH = 32


def _expand_seed(seed: bytes, length: int, domain: bytes) -> bytes:
    """Expand seed to desired length with counter-mode SHA-256."""
    output = b""
    counter = 0
    while len(output) < length:
        output += hashlib.sha256(seed + domain + counter.to_bytes(4, "big")).digest()
        counter += 1
    return output[:length]


def _refuse_in_production(name: str) -> None:
    if is_production_mode():
        raise BackendUnavailableError(
            f"{name} is disabled in production mode. "
            "Set PQC_KEYRING_PRODUCTION=0 for development/testing."
        )
    logger.warning(f"Using {name} - NOT SECURE FOR PRODUCTION")


class _MockBackendMixin:
    """Seed-derived key pairs shared by both mock backends."""

    def _make_pair(self, algorithm: str, sizes: dict) -> Tuple[bytes, bytes]:
        seed = secrets.token_bytes(SEED_LENGTH)
        public_key = _expand_seed(seed, sizes["public_key"], b"public")
        secret_key = seed + _expand_seed(seed, sizes["secret_key"] - SEED_LENGTH, b"secret")
        return public_key, secret_key

    def _public_from_secret(self, secret_key: bytes, sizes: dict) -> bytes:
        return _expand_seed(secret_key[:SEED_LENGTH], sizes["public_key"], b"public")


class MockSignatureBackend(_MockBackendMixin, SignatureBackend):
    """
    Mock PQC signature backend.

    Signature layout: HMAC-SHA512(SHA-256(pk), data) (64) || deterministic filler.
    Anyone holding the public key can forge these.
    """

    def __init__(self, enabled: Optional[List[str]] = None):
        _refuse_in_production("MockSignatureBackend")
        self._enabled = set(enabled) if enabled is not None else set(SIG_PARAMS)

    def supported_algorithms(self) -> List[str]:
        return list(SIG_PARAMS)

    def is_algorithm_enabled(self, algorithm: str) -> bool:
        return algorithm in SIG_PARAMS and algorithm in self._enabled

    def expected_public_key_length(self, algorithm: str) -> int:
        return lookup_params(SIG_PARAMS, algorithm, self.kind)["public_key"]

    def generate_keypair(self, algorithm: str) -> Tuple[bytes, bytes]:
        self.require_enabled(algorithm)
        return self._make_pair(algorithm, SIG_PARAMS[algorithm])

    def export_public_key(self, algorithm: str, secret_key: bytes) -> bytes:
        return self._public_from_secret(secret_key, lookup_params(SIG_PARAMS, algorithm, self.kind))

    def sign(self, algorithm: str, secret_key: bytes, data: bytes) -> bytes:
        self.require_enabled(algorithm)
        params = SIG_PARAMS[algorithm]
        mac = self._mac(self._public_from_secret(secret_key, params), data)
        return mac + _expand_seed(mac, params["signature"] - len(mac), b"signature")

    def verify(self, algorithm: str, public_key: bytes, data: bytes, signature: bytes) -> bool:
        self.require_enabled(algorithm)
        if len(signature) != SIG_PARAMS[algorithm]["signature"]:
            return False
        return hmac.compare_digest(signature[:64], self._mac(public_key, data))

    @staticmethod
    def _mac(public_key: bytes, data: bytes) -> bytes:
        return hmac.new(hashlib.sha256(public_key).digest(), data, hashlib.sha512).digest()


class MockKemBackend(_MockBackendMixin, KemBackend):
    """
    Mock PQC KEM backend.

    Ciphertext layout: nonce (32) || secret XOR SHA-256(pk || nonce) (32) || filler
    """

    def __init__(self, enabled: Optional[List[str]] = None):
        _refuse_in_production("MockKemBackend")
        self._enabled = set(enabled) if enabled is not None else set(KEM_PARAMS)

    def supported_algorithms(self) -> List[str]:
        return list(KEM_PARAMS)

    def is_algorithm_enabled(self, algorithm: str) -> bool:
        return algorithm in KEM_PARAMS and algorithm in self._enabled

    def expected_public_key_length(self, algorithm: str) -> int:
        return lookup_params(KEM_PARAMS, algorithm, self.kind)["public_key"]

    def generate_keypair(self, algorithm: str) -> Tuple[bytes, bytes]:
        self.require_enabled(algorithm)
        return self._make_pair(algorithm, KEM_PARAMS[algorithm])

    def export_public_key(self, algorithm: str, secret_key: bytes) -> bytes:
        return self._public_from_secret(secret_key, lookup_params(KEM_PARAMS, algorithm, self.kind))

    def encapsulate(self, algorithm: str, public_key: bytes) -> Tuple[bytes, bytes]:
        self.require_enabled(algorithm)
        params = KEM_PARAMS[algorithm]

        shared_secret = secrets.token_bytes(params["shared_secret"])
        nonce = secrets.token_bytes(32)
        mask = hashlib.sha256(public_key + nonce).digest()
        masked = bytes(s ^ m for s, m in zip(shared_secret, mask))
        filler = secrets.token_bytes(params["ciphertext"] - len(nonce) - len(masked))

        return nonce + masked + filler, shared_secret

    def decapsulate(self, algorithm: str, secret_key: bytes, ciphertext: bytes) -> bytes:
        self.require_enabled(algorithm)
        params = KEM_PARAMS[algorithm]
        if len(ciphertext) != params["ciphertext"]:
            raise DecryptionError(
                f"Ciphertext length {len(ciphertext)} does not match {algorithm}"
            )

        public_key = self._public_from_secret(secret_key, params)
        mask = hashlib.sha256(public_key + ciphertext[:32]).digest()
        return bytes(c ^ m for c, m in zip(ciphertext[32:64], mask))
