"""
Algorithm Backend Interface

Capability contract the key stores consume. One backend serves one key kind;
the core never embeds algorithm-specific math.

Implementations must provide:
- Key pair generation for a named algorithm
- Public key export from a stored secret key
- Expected public key length for write-time validation
- Signing and verification (signature backends)
- Algorithm enablement queries
- Release of native resources (dispose / context manager)
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from ..exceptions import UnsupportedAlgorithmError
from ..models import KeyKind

logger = logging.getLogger(__name__)


# =============================================================================
# Size Tables
# =============================================================================


# Published parameter sizes in bytes (liboqs naming)
KEM_PARAMS: Dict[str, Dict[str, int]] = {
    "Kyber512": {"public_key": 800, "secret_key": 1632, "ciphertext": 768, "shared_secret": 32},
    "Kyber768": {"public_key": 1184, "secret_key": 2400, "ciphertext": 1088, "shared_secret": 32},
    "Kyber1024": {"public_key": 1568, "secret_key": 3168, "ciphertext": 1568, "shared_secret": 32},
    "ML-KEM-512": {"public_key": 800, "secret_key": 1632, "ciphertext": 768, "shared_secret": 32},
    "ML-KEM-768": {"public_key": 1184, "secret_key": 2400, "ciphertext": 1088, "shared_secret": 32},
    "ML-KEM-1024": {
        "public_key": 1568,
        "secret_key": 3168,
        "ciphertext": 1568,
        "shared_secret": 32,
    },
}

SIG_PARAMS: Dict[str, Dict[str, int]] = {
    "Dilithium2": {"public_key": 1312, "secret_key": 2528, "signature": 2420},
    "Dilithium3": {"public_key": 1952, "secret_key": 4000, "signature": 3293},
    "Dilithium5": {"public_key": 2592, "secret_key": 4864, "signature": 4595},
    "ML-DSA-44": {"public_key": 1312, "secret_key": 2560, "signature": 2420},
    "ML-DSA-65": {"public_key": 1952, "secret_key": 4032, "signature": 3309},
    "ML-DSA-87": {"public_key": 2592, "secret_key": 4896, "signature": 4627},
    # Falcon signatures are variable length; these are the maxima
    "Falcon-512": {"public_key": 897, "secret_key": 1281, "signature": 752},
    "Falcon-1024": {"public_key": 1793, "secret_key": 2305, "signature": 1462},
}


# =============================================================================
# Backend Interface
# =============================================================================


class AlgorithmBackend(ABC):
    """
    Abstract base class for key-pair backends.

    Backends are context managers; leaving the block calls dispose().
    """

    kind: KeyKind

    @abstractmethod
    def supported_algorithms(self) -> List[str]:
        """Algorithms this backend knows, enabled or not."""
        pass

    @abstractmethod
    def is_algorithm_enabled(self, algorithm: str) -> bool:
        """Check whether the algorithm can be used right now."""
        pass

    @abstractmethod
    def expected_public_key_length(self, algorithm: str) -> int:
        """
        Expected public key length in bytes.

        Raises:
            UnsupportedAlgorithmError: If the algorithm is unknown
        """
        pass

    @abstractmethod
    def generate_keypair(self, algorithm: str) -> Tuple[bytes, bytes]:
        """
        Generate a key pair.

        Args:
            algorithm: Algorithm identifier

        Returns:
            Tuple of (public_key, secret_key)
        """
        pass

    @abstractmethod
    def export_public_key(self, algorithm: str, secret_key: bytes) -> bytes:
        """Recover the public key belonging to a stored secret key."""
        pass

    def supports(self, algorithm: str) -> bool:
        return algorithm in self.supported_algorithms()

    def require_enabled(self, algorithm: str) -> None:
        """Raise UnsupportedAlgorithmError unless the algorithm is usable."""
        if not algorithm or not self.is_algorithm_enabled(algorithm):
            logger.warning(f"Rejected {self.kind.label} algorithm: {algorithm}")
            raise UnsupportedAlgorithmError(algorithm, self.kind.label)

    def dispose(self) -> None:
        """Release native resources. Safe to call more than once."""
        pass

    def __enter__(self) -> "AlgorithmBackend":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()


class KemBackend(AlgorithmBackend):
    """Backend for key encapsulation mechanisms."""

    kind = KeyKind.PQC_KEM

    @abstractmethod
    def encapsulate(self, algorithm: str, public_key: bytes) -> Tuple[bytes, bytes]:
        """
        Encapsulate a fresh shared secret to a public key.

        Returns:
            Tuple of (ciphertext, shared_secret)
        """
        pass

    @abstractmethod
    def decapsulate(self, algorithm: str, secret_key: bytes, ciphertext: bytes) -> bytes:
        """Recover the shared secret from a ciphertext."""
        pass


class SignatureBackend(AlgorithmBackend):
    """Backend for PQC signature schemes."""

    kind = KeyKind.PQC_SIGNATURE

    @abstractmethod
    def sign(self, algorithm: str, secret_key: bytes, data: bytes) -> bytes:
        """Sign data with a secret key."""
        pass

    @abstractmethod
    def verify(self, algorithm: str, public_key: bytes, data: bytes, signature: bytes) -> bool:
        """
        Check a signature.

        Returns:
            True if the signature is valid; False for any invalid signature

        Raises:
            UnsupportedAlgorithmError: If the algorithm is unknown or disabled
        """
        pass


def lookup_params(table: Dict[str, Dict[str, int]], algorithm: str, kind: KeyKind) -> Dict[str, int]:
    """Fetch size parameters or raise UnsupportedAlgorithmError."""
    params = table.get(algorithm)
    if params is None:
        raise UnsupportedAlgorithmError(algorithm, kind.label)
    return params
