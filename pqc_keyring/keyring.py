"""
Keyring Assembly

Builds the object graph (codec, backends, contact cache, key stores,
protocol, signer) once from a KeyringConfig. Nothing in the package is a global
singleton; callers hold the Keyring and pass its parts where needed.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .backends import AlgorithmBackend, create_backends
from .config import KeyringConfig
from .contacts.cache import ContactKeyCache
from .contacts.kem_exchange import KemExchange
from .crypto.codec import KeyCodec
from .distribution.protocol import KeyDistributionProtocol
from .distribution.transport import MessageTransport
from .exceptions import ConfigurationError
from .keystore.keyfile import KeyFileService
from .keystore.registry import KeyStoreRegistry
from .keystore.service import KeyService
from .keystore.store import KeyStore
from .models import KeyKind
from .signing import CompositeSigner
from .workers import KeyOperationWorker

logger = logging.getLogger(__name__)


@dataclass
class Keyring:
    """All keyring components for one configuration."""

    config: KeyringConfig
    codec: KeyCodec
    backends: Dict[KeyKind, AlgorithmBackend]
    cache: ContactKeyCache
    registry: KeyStoreRegistry
    protocol: KeyDistributionProtocol
    key_files: KeyFileService
    keys: KeyService
    kem: KemExchange
    signer: CompositeSigner

    def create_worker(self) -> KeyOperationWorker:
        return KeyOperationWorker(self.registry, max_workers=self.config.worker_threads)

    def close(self) -> None:
        """Persist the contact cache and release backends."""
        if self.cache.path is not None:
            self.cache.persist()
        self.registry.dispose()

    def __enter__(self) -> "Keyring":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def create_keyring(
    config: Optional[KeyringConfig] = None,
    transport: Optional[MessageTransport] = None,
    persist: bool = True,
) -> Keyring:
    """
    Create a keyring.

    Args:
        config: Configuration (default: from environment)
        transport: Transport for outbound announcements
        persist: Use files under the data directory; False keeps everything in memory

    Raises:
        ConfigurationError: If the configuration does not validate
    """
    config = config or KeyringConfig.from_environment()
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigurationError("Invalid keyring configuration: " + "; ".join(errors))

    codec = KeyCodec(config.crypto)
    backends = create_backends(config)
    storage = config.storage

    cache = ContactKeyCache(backends, storage.contact_cache_path if persist else None)
    if persist:
        cache.load()

    passphrase = storage.store_passphrase
    if persist and not passphrase:
        logger.warning("No store passphrase configured; own key pairs are kept in memory only")

    registry = KeyStoreRegistry()
    for kind, backend in backends.items():
        registry.register(
            KeyStore(
                kind,
                backend,
                codec,
                cache,
                path=storage.key_store_path(kind) if persist and passphrase else None,
                passphrase=passphrase,
                algorithms=config.algorithms,
            )
        )

    kem_store = registry.get(KeyKind.PQC_KEM)
    logger.info(
        f"Keyring ready ({config.environment.value}, backend={config.backend}, "
        f"data={storage.resolved_directory if persist else 'memory'})"
    )
    return Keyring(
        config=config,
        codec=codec,
        backends=backends,
        cache=cache,
        registry=registry,
        protocol=KeyDistributionProtocol(registry, cache, transport),
        key_files=KeyFileService(registry, codec),
        keys=KeyService(registry),
        kem=KemExchange(kem_store.backend, cache, kem_store),
        signer=CompositeSigner(registry, cache),
    )
