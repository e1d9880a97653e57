"""
Pytest Configuration and Shared Fixtures

Centralized fixtures for keyring tests. Everything runs against the mock PQC
backends and the real classical backend, with a permissive password floor.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock

import pytest

from pqc_keyring.backends import ClassicalBackend, MockKemBackend, MockSignatureBackend
from pqc_keyring.config import CryptoConfig, Environment, KeyringConfig
from pqc_keyring.contacts.cache import ContactKeyCache
from pqc_keyring.crypto.codec import KeyCodec
from pqc_keyring.distribution.protocol import KeyDistributionProtocol
from pqc_keyring.distribution.transport import MessageTransport
from pqc_keyring.keystore.keyfile import KeyFileService
from pqc_keyring.keystore.registry import KeyStoreRegistry
from pqc_keyring.keystore.store import KeyStore
from pqc_keyring.models import Account, KeyKind


# =============================================================================
# Environment Setup
# =============================================================================


@pytest.fixture(autouse=True)
def clean_environment():
    """Ensure clean environment for each test."""
    original_env = os.environ.copy()
    os.environ.pop("PQC_KEYRING_PRODUCTION", None)

    yield

    os.environ.clear()
    os.environ.update(original_env)


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def crypto_config() -> CryptoConfig:
    """Permissive password policy for tests."""
    return CryptoConfig(min_password_length=1)


@pytest.fixture
def test_config(temp_dir: Path) -> KeyringConfig:
    """Testing configuration rooted in a temporary directory."""
    config = KeyringConfig.for_environment(Environment.TESTING)
    config.storage.data_directory = temp_dir
    config.storage.store_passphrase = "store-passphrase"
    # RSA-4096 generation is slow; tests use Ed25519 as classical default
    config.algorithms.default_classical_algorithm = "Ed25519"
    return config


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def codec(crypto_config: CryptoConfig) -> KeyCodec:
    return KeyCodec(crypto_config)


@pytest.fixture
def backends():
    """Backends for every key kind."""
    return {
        KeyKind.CLASSICAL: ClassicalBackend(),
        KeyKind.PQC_SIGNATURE: MockSignatureBackend(),
        KeyKind.PQC_KEM: MockKemBackend(),
    }


@pytest.fixture
def cache(backends) -> ContactKeyCache:
    return ContactKeyCache(backends)


@pytest.fixture
def registry(backends, codec, cache) -> KeyStoreRegistry:
    """In-memory key stores for every kind."""
    return KeyStoreRegistry(
        {kind: KeyStore(kind, backend, codec, cache) for kind, backend in backends.items()}
    )


@pytest.fixture
def sig_store(registry) -> KeyStore:
    return registry.get(KeyKind.PQC_SIGNATURE)


@pytest.fixture
def kem_store(registry) -> KeyStore:
    return registry.get(KeyKind.PQC_KEM)


@pytest.fixture
def classical_store(registry) -> KeyStore:
    return registry.get(KeyKind.CLASSICAL)


@pytest.fixture
def key_files(registry, codec) -> KeyFileService:
    return KeyFileService(registry, codec)


@pytest.fixture
def mock_transport():
    """Transport that records requests instead of sending."""
    return MagicMock(spec=MessageTransport)


@pytest.fixture
def protocol(registry, cache, mock_transport) -> KeyDistributionProtocol:
    return KeyDistributionProtocol(registry, cache, mock_transport)


@pytest.fixture
def alice() -> Account:
    return Account(account_id="acct-1", email="alice@example.com", name="Alice")


@pytest.fixture
def bob() -> Account:
    return Account(account_id="acct-2", email="Bob@Example.com", name="Bob")
