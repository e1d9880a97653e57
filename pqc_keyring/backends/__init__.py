"""
Algorithm backends, one per key kind.

Usage:
    backends = create_backends(config)
    public_key, secret_key = backends[KeyKind.PQC_SIGNATURE].generate_keypair("Dilithium2")
"""

from typing import Dict

from ..config import KeyringConfig
from ..exceptions import ConfigurationError
from ..models import KeyKind
from .base import KEM_PARAMS, SIG_PARAMS, AlgorithmBackend, KemBackend, SignatureBackend
from .classical import CLASSICAL_PUBLIC_KEY_LENGTHS, ClassicalBackend
from .mock import MockKemBackend, MockSignatureBackend
from .oqs_backend import OqsKemBackend, OqsSignatureBackend


def create_backends(config: KeyringConfig) -> Dict[KeyKind, AlgorithmBackend]:
    """
    Create the backend for every key kind.

    Args:
        config: Keyring configuration ("oqs" or "mock" PQC backend)

    Returns:
        Mapping of KeyKind to backend
    """
    algorithms = config.algorithms
    classical = ClassicalBackend(algorithms.allowed_classical_algorithms)

    if config.backend == "mock":
        sig: SignatureBackend = MockSignatureBackend(algorithms.allowed_sig_algorithms)
        kem: KemBackend = MockKemBackend(algorithms.allowed_kem_algorithms)
    elif config.backend == "oqs":
        sig = OqsSignatureBackend(algorithms.allowed_sig_algorithms)
        kem = OqsKemBackend(algorithms.allowed_kem_algorithms)
    else:
        raise ConfigurationError(f"Unknown backend: {config.backend}")

    return {
        KeyKind.CLASSICAL: classical,
        KeyKind.PQC_SIGNATURE: sig,
        KeyKind.PQC_KEM: kem,
    }


__all__ = [
    "AlgorithmBackend",
    "KemBackend",
    "SignatureBackend",
    "ClassicalBackend",
    "OqsSignatureBackend",
    "OqsKemBackend",
    "MockSignatureBackend",
    "MockKemBackend",
    "CLASSICAL_PUBLIC_KEY_LENGTHS",
    "KEM_PARAMS",
    "SIG_PARAMS",
    "create_backends",
]
