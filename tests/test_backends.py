"""
Tests for Algorithm Backends

Classical (cryptography), mock PQC and liboqs backends.
"""

import sys
from unittest.mock import MagicMock

import pytest

from pqc_keyring.backends import (
    KEM_PARAMS,
    SIG_PARAMS,
    ClassicalBackend,
    MockKemBackend,
    MockSignatureBackend,
    create_backends,
)
from pqc_keyring.backends.oqs_backend import OqsKemBackend, OqsSignatureBackend
from pqc_keyring.config import Environment, KeyringConfig
from pqc_keyring.exceptions import (
    AlgorithmMismatchError,
    BackendUnavailableError,
    ConfigurationError,
    DecryptionError,
    UnsupportedAlgorithmError,
)
from pqc_keyring.models import KeyKind


# =============================================================================
# Classical Backend
# =============================================================================


class TestClassicalBackend:
    """Tests for the cryptography-backed classical backend."""

    @pytest.fixture
    def backend(self):
        return ClassicalBackend()

    @pytest.mark.parametrize("algorithm", ["Ed25519", "X25519", "RSA-2048"])
    def test_generate_matches_expected_length(self, backend, algorithm):
        public_key, secret_key = backend.generate_keypair(algorithm)
        assert len(public_key) == backend.expected_public_key_length(algorithm)
        assert secret_key

    def test_export_public_key_from_secret(self, backend):
        public_key, secret_key = backend.generate_keypair("Ed25519")
        assert backend.export_public_key("Ed25519", secret_key) == public_key

    def test_export_rejects_wrong_algorithm(self, backend):
        _, secret_key = backend.generate_keypair("Ed25519")
        with pytest.raises(AlgorithmMismatchError):
            backend.export_public_key("X25519", secret_key)

    def test_export_rejects_garbage(self, backend):
        with pytest.raises(AlgorithmMismatchError):
            backend.export_public_key("Ed25519", b"not a key")

    def test_unknown_algorithm(self, backend):
        with pytest.raises(UnsupportedAlgorithmError):
            backend.expected_public_key_length("DSA-1024")
        with pytest.raises(UnsupportedAlgorithmError):
            backend.generate_keypair("DSA-1024")

    def test_disabled_algorithm(self):
        backend = ClassicalBackend(enabled=["Ed25519"])
        assert backend.supports("RSA-4096")
        assert not backend.is_algorithm_enabled("RSA-4096")
        with pytest.raises(UnsupportedAlgorithmError):
            backend.generate_keypair("RSA-4096")

    def test_context_manager(self):
        with ClassicalBackend() as backend:
            assert backend.kind == KeyKind.CLASSICAL

    @pytest.mark.parametrize("algorithm", ["Ed25519", "RSA-2048"])
    def test_sign_verify(self, backend, algorithm):
        public_key, secret_key = backend.generate_keypair(algorithm)
        signature = backend.sign(algorithm, secret_key, b"message")

        assert backend.verify(algorithm, public_key, b"message", signature)
        assert not backend.verify(algorithm, public_key, b"tampered", signature)

    def test_verify_with_other_key(self, backend):
        _, secret_key = backend.generate_keypair("Ed25519")
        other_public, _ = backend.generate_keypair("Ed25519")
        signature = backend.sign("Ed25519", secret_key, b"message")
        assert not backend.verify("Ed25519", other_public, b"message", signature)

    def test_verify_malformed_key(self, backend):
        assert not backend.verify("Ed25519", b"short", b"message", b"\x00" * 64)
        assert not backend.verify("RSA-2048", b"not der", b"message", b"\x00" * 256)

    def test_x25519_cannot_sign(self, backend):
        _, secret_key = backend.generate_keypair("X25519")
        with pytest.raises(UnsupportedAlgorithmError):
            backend.sign("X25519", secret_key, b"message")


# =============================================================================
# Mock Backends
# =============================================================================


class TestMockSignatureBackend:
    """Tests for the mock signature backend."""

    @pytest.mark.parametrize("algorithm", sorted(SIG_PARAMS))
    def test_sizes(self, algorithm):
        backend = MockSignatureBackend()
        public_key, secret_key = backend.generate_keypair(algorithm)
        assert len(public_key) == SIG_PARAMS[algorithm]["public_key"]
        assert len(secret_key) == SIG_PARAMS[algorithm]["secret_key"]

    def test_dilithium2_length(self):
        assert MockSignatureBackend().expected_public_key_length("Dilithium2") == 1312

    def test_export_public_key(self):
        backend = MockSignatureBackend()
        public_key, secret_key = backend.generate_keypair("Dilithium3")
        assert backend.export_public_key("Dilithium3", secret_key) == public_key

    def test_keys_are_random(self):
        backend = MockSignatureBackend()
        assert backend.generate_keypair("Dilithium2") != backend.generate_keypair("Dilithium2")

    @pytest.mark.parametrize("algorithm", ["Dilithium2", "ML-DSA-65", "Falcon-512"])
    def test_sign_verify(self, algorithm):
        backend = MockSignatureBackend()
        public_key, secret_key = backend.generate_keypair(algorithm)
        signature = backend.sign(algorithm, secret_key, b"message")

        assert len(signature) == SIG_PARAMS[algorithm]["signature"]
        assert backend.verify(algorithm, public_key, b"message", signature)
        assert not backend.verify(algorithm, public_key, b"tampered", signature)
        assert not backend.verify(algorithm, public_key, b"message", signature[:-1])

    def test_verify_with_other_key(self):
        backend = MockSignatureBackend()
        _, secret_key = backend.generate_keypair("Dilithium2")
        other_public, _ = backend.generate_keypair("Dilithium2")
        signature = backend.sign("Dilithium2", secret_key, b"message")
        assert not backend.verify("Dilithium2", other_public, b"message", signature)

    def test_verify_disabled_algorithm(self):
        backend = MockSignatureBackend(enabled=["Dilithium2"])
        with pytest.raises(UnsupportedAlgorithmError):
            backend.verify("Falcon-512", b"P" * 897, b"message", b"S" * 752)

    def test_refused_in_production(self, monkeypatch):
        monkeypatch.setenv("PQC_KEYRING_PRODUCTION", "1")
        with pytest.raises(BackendUnavailableError):
            MockSignatureBackend()


class TestMockKemBackend:
    """Tests for the mock KEM backend."""

    @pytest.mark.parametrize("algorithm", sorted(KEM_PARAMS))
    def test_encapsulate_decapsulate(self, algorithm):
        backend = MockKemBackend()
        public_key, secret_key = backend.generate_keypair(algorithm)
        ciphertext, shared_secret = backend.encapsulate(algorithm, public_key)

        assert len(ciphertext) == KEM_PARAMS[algorithm]["ciphertext"]
        assert len(shared_secret) == 32
        assert backend.decapsulate(algorithm, secret_key, ciphertext) == shared_secret

    def test_other_key_does_not_decapsulate(self):
        backend = MockKemBackend()
        public_key, _ = backend.generate_keypair("Kyber512")
        _, other_secret = backend.generate_keypair("Kyber512")
        ciphertext, shared_secret = backend.encapsulate("Kyber512", public_key)
        assert backend.decapsulate("Kyber512", other_secret, ciphertext) != shared_secret

    def test_bad_ciphertext_length(self):
        backend = MockKemBackend()
        _, secret_key = backend.generate_keypair("Kyber512")
        with pytest.raises(DecryptionError):
            backend.decapsulate("Kyber512", secret_key, b"short")

    def test_refused_in_production(self, monkeypatch):
        monkeypatch.setenv("PQC_KEYRING_PRODUCTION", "true")
        with pytest.raises(BackendUnavailableError):
            MockKemBackend()


# =============================================================================
# liboqs Backends
# =============================================================================


@pytest.fixture
def fake_oqs(monkeypatch):
    """Stand-in for the oqs module."""
    oqs = MagicMock()
    oqs.get_enabled_sig_mechanisms.return_value = ["Dilithium2", "ML-DSA-44"]
    oqs.get_enabled_kem_mechanisms.return_value = ["Kyber512", "ML-KEM-768"]

    signer = MagicMock()
    signer.generate_keypair.return_value = b"P" * 1312
    signer.export_secret_key.return_value = b"S" * 2528
    signer.sign.return_value = b"G" * 2420
    signer.verify.return_value = True
    oqs.Signature.return_value.__enter__.return_value = signer

    kem = MagicMock()
    kem.generate_keypair.return_value = b"P" * 800
    kem.export_secret_key.return_value = b"S" * 1632
    kem.encap_secret.return_value = (b"C" * 768, b"K" * 32)
    kem.decap_secret.return_value = b"K" * 32
    oqs.KeyEncapsulation.return_value.__enter__.return_value = kem

    monkeypatch.setitem(sys.modules, "oqs", oqs)
    return oqs


class TestOqsBackends:
    """Tests for the liboqs backends against a mocked oqs module."""

    def test_missing_library(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "oqs", None)
        with pytest.raises(BackendUnavailableError):
            OqsSignatureBackend()

    def test_enabled_mechanisms(self, fake_oqs):
        backend = OqsSignatureBackend()
        assert backend.is_algorithm_enabled("Dilithium2")
        assert not backend.is_algorithm_enabled("Dilithium5")
        assert not backend.is_algorithm_enabled("Unknown")

    def test_allow_list_narrows(self, fake_oqs):
        backend = OqsSignatureBackend(allowed=["ML-DSA-44"])
        assert not backend.is_algorithm_enabled("Dilithium2")

    def test_signature_generate(self, fake_oqs):
        backend = OqsSignatureBackend()
        public_key, secret_key = backend.generate_keypair("Dilithium2")
        assert len(public_key) == 1312
        assert len(secret_key) == 2528
        fake_oqs.Signature.assert_called_with("Dilithium2")

    def test_signature_export_unavailable(self, fake_oqs):
        with pytest.raises(UnsupportedAlgorithmError):
            OqsSignatureBackend().export_public_key("Dilithium2", b"S" * 2528)

    def test_signature_sign(self, fake_oqs):
        signature = OqsSignatureBackend().sign("Dilithium2", b"S" * 2528, b"message")
        assert signature == b"G" * 2420
        fake_oqs.Signature.assert_called_with("Dilithium2", b"S" * 2528)

    def test_signature_verify(self, fake_oqs):
        backend = OqsSignatureBackend()
        assert backend.verify("Dilithium2", b"P" * 1312, b"message", b"G" * 2420)
        verifier = fake_oqs.Signature.return_value.__enter__.return_value
        verifier.verify.assert_called_with(b"message", b"G" * 2420, b"P" * 1312)

    def test_signature_verify_error_is_invalid(self, fake_oqs):
        verifier = fake_oqs.Signature.return_value.__enter__.return_value
        verifier.verify.side_effect = RuntimeError("bad signature")
        assert not OqsSignatureBackend().verify("Dilithium2", b"P" * 1312, b"m", b"G")

    def test_kem_round_trip(self, fake_oqs):
        backend = OqsKemBackend()
        public_key, secret_key = backend.generate_keypair("Kyber512")
        ciphertext, shared = backend.encapsulate("Kyber512", public_key)
        assert backend.decapsulate("Kyber512", secret_key, ciphertext) == shared
        fake_oqs.KeyEncapsulation.assert_called_with("Kyber512", secret_key)

    def test_kem_export_slices_embedded_public_key(self, fake_oqs):
        public_key = bytes(range(256)) * 3 + bytes(32)
        secret_key = b"\x01" * 768 + public_key + b"\x02" * 64
        assert OqsKemBackend().export_public_key("Kyber512", secret_key) == public_key

    def test_kem_decapsulation_failure(self, fake_oqs):
        kem = fake_oqs.KeyEncapsulation.return_value.__enter__.return_value
        kem.decap_secret.side_effect = RuntimeError("bad ciphertext")
        with pytest.raises(DecryptionError):
            OqsKemBackend().decapsulate("Kyber512", b"S" * 1632, b"C" * 768)

    def test_dispose_resets_mechanism_cache(self, fake_oqs):
        with OqsKemBackend() as backend:
            assert backend.is_algorithm_enabled("Kyber512")
        assert fake_oqs.get_enabled_kem_mechanisms.call_count == 1
        assert backend.is_algorithm_enabled("Kyber512")
        assert fake_oqs.get_enabled_kem_mechanisms.call_count == 2


# =============================================================================
# Factory
# =============================================================================


class TestCreateBackends:
    """Tests for create_backends()."""

    def test_mock_backends(self):
        backends = create_backends(KeyringConfig.for_environment(Environment.TESTING))
        assert isinstance(backends[KeyKind.CLASSICAL], ClassicalBackend)
        assert isinstance(backends[KeyKind.PQC_SIGNATURE], MockSignatureBackend)
        assert isinstance(backends[KeyKind.PQC_KEM], MockKemBackend)

    def test_oqs_backends(self, fake_oqs):
        backends = create_backends(KeyringConfig())
        assert isinstance(backends[KeyKind.PQC_SIGNATURE], OqsSignatureBackend)
        assert isinstance(backends[KeyKind.PQC_KEM], OqsKemBackend)

    def test_unknown_backend(self):
        config = KeyringConfig(backend="quantum")
        with pytest.raises(ConfigurationError):
            create_backends(config)

    def test_allow_lists_applied(self):
        config = KeyringConfig.for_environment(Environment.TESTING)
        config.algorithms.allowed_kem_algorithms = ["Kyber768"]
        backends = create_backends(config)
        assert not backends[KeyKind.PQC_KEM].is_algorithm_enabled("Kyber512")
        assert backends[KeyKind.PQC_KEM].is_algorithm_enabled("Kyber768")
