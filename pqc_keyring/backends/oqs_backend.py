"""
liboqs Backends

Post-quantum signature and KEM key pairs through liboqs-python (`oqs`).

SECURITY: These backends require the liboqs library. They will NOT fall back
to mock implementations; use the mock backends explicitly for tests.

Native handles (oqs.Signature, oqs.KeyEncapsulation) are opened per call in a
`with` block, so no handle outlives the operation that needed it.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..exceptions import BackendUnavailableError, DecryptionError, UnsupportedAlgorithmError
from ..models import KeyKind
from .base import KEM_PARAMS, SIG_PARAMS, KemBackend, SignatureBackend, lookup_params

logger = logging.getLogger(__name__)

# Trailer after the embedded public key in Kyber / ML-KEM secret keys: H(pk) || z
_KEM_SECRET_TRAILER = 64


def _load_oqs():
    """Import liboqs-python or raise BackendUnavailableError."""
    try:
        import oqs
    except ImportError as e:
        raise BackendUnavailableError(
            "The 'liboqs' library is required for PQC keys. "
            "Install with: pip install liboqs-python",
            e,
        ) from e
    return oqs


class _OqsBackendMixin:
    """Shared mechanism bookkeeping. Subclasses provide _enabled_mechanisms()."""

    _params: Dict[str, Dict[str, int]]
    kind: KeyKind

    def _init_oqs(self, allowed: Optional[List[str]]) -> None:
        self._oqs = _load_oqs()
        self._allowed = set(allowed) if allowed is not None else set(self._params)
        self._mechanisms: Optional[List[str]] = None

    def supported_algorithms(self) -> List[str]:
        return list(self._params)

    def is_algorithm_enabled(self, algorithm: str) -> bool:
        if algorithm not in self._params or algorithm not in self._allowed:
            return False
        if self._mechanisms is None:
            self._mechanisms = list(self._enabled_mechanisms())
        return algorithm in self._mechanisms

    def expected_public_key_length(self, algorithm: str) -> int:
        return lookup_params(self._params, algorithm, self.kind)["public_key"]

    def dispose(self) -> None:
        self._mechanisms = None


class OqsSignatureBackend(_OqsBackendMixin, SignatureBackend):
    """PQC signature keys (Dilithium, ML-DSA, Falcon) via liboqs."""

    _params = SIG_PARAMS

    def __init__(self, allowed: Optional[List[str]] = None):
        self._init_oqs(allowed)
        logger.info("Using liboqs for PQC signature keys")

    def _enabled_mechanisms(self) -> List[str]:
        return self._oqs.get_enabled_sig_mechanisms()

    def generate_keypair(self, algorithm: str) -> Tuple[bytes, bytes]:
        self.require_enabled(algorithm)
        with self._oqs.Signature(algorithm) as signer:
            public_key = signer.generate_keypair()
            secret_key = signer.export_secret_key()
        return bytes(public_key), bytes(secret_key)

    def export_public_key(self, algorithm: str, secret_key: bytes) -> bytes:
        # Signature secret keys do not carry the full public key
        logger.warning(f"Public key export from secret key not available for {algorithm}")
        raise UnsupportedAlgorithmError(algorithm, "public key recovery")

    def sign(self, algorithm: str, secret_key: bytes, data: bytes) -> bytes:
        self.require_enabled(algorithm)
        with self._oqs.Signature(algorithm, secret_key) as signer:
            return bytes(signer.sign(data))

    def verify(self, algorithm: str, public_key: bytes, data: bytes, signature: bytes) -> bool:
        self.require_enabled(algorithm)
        try:
            with self._oqs.Signature(algorithm) as verifier:
                return bool(verifier.verify(data, signature, public_key))
        except (RuntimeError, ValueError) as e:
            logger.warning(f"{algorithm} verification failed: {e}")
            return False


class OqsKemBackend(_OqsBackendMixin, KemBackend):
    """PQC KEM keys (Kyber, ML-KEM) via liboqs."""

    _params = KEM_PARAMS

    def __init__(self, allowed: Optional[List[str]] = None):
        self._init_oqs(allowed)
        logger.info("Using liboqs for PQC KEM keys")

    def _enabled_mechanisms(self) -> List[str]:
        return self._oqs.get_enabled_kem_mechanisms()

    def generate_keypair(self, algorithm: str) -> Tuple[bytes, bytes]:
        self.require_enabled(algorithm)
        with self._oqs.KeyEncapsulation(algorithm) as kem:
            public_key = kem.generate_keypair()
            secret_key = kem.export_secret_key()
        return bytes(public_key), bytes(secret_key)

    def export_public_key(self, algorithm: str, secret_key: bytes) -> bytes:
        """Slice the public key embedded in a Kyber / ML-KEM secret key."""
        params = lookup_params(self._params, algorithm, self.kind)
        if len(secret_key) != params["secret_key"]:
            raise UnsupportedAlgorithmError(algorithm, "public key recovery")
        end = len(secret_key) - _KEM_SECRET_TRAILER
        return bytes(secret_key[end - params["public_key"]:end])

    def encapsulate(self, algorithm: str, public_key: bytes) -> Tuple[bytes, bytes]:
        self.require_enabled(algorithm)
        with self._oqs.KeyEncapsulation(algorithm) as kem:
            ciphertext, shared_secret = kem.encap_secret(public_key)
        return bytes(ciphertext), bytes(shared_secret)

    def decapsulate(self, algorithm: str, secret_key: bytes, ciphertext: bytes) -> bytes:
        self.require_enabled(algorithm)
        try:
            with self._oqs.KeyEncapsulation(algorithm, secret_key) as kem:
                return bytes(kem.decap_secret(ciphertext))
        except (RuntimeError, ValueError) as e:
            logger.warning(f"Decapsulation failed for {algorithm}")
            raise DecryptionError("Decapsulation failed", e) from e
