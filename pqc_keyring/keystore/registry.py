"""
Key Store Registry

Maps each KeyKind to its KeyStore. Built once by create_keyring() and passed
to the protocol, the key file service and the worker.
"""

import logging
from typing import Dict, Iterator, List, Optional

from ..exceptions import ConfigurationError
from ..models import KeyKind
from .store import KeyStore

logger = logging.getLogger(__name__)


class KeyStoreRegistry:
    """KeyKind -> KeyStore lookup."""

    def __init__(self, stores: Optional[Dict[KeyKind, KeyStore]] = None):
        self._stores: Dict[KeyKind, KeyStore] = {}
        for store in (stores or {}).values():
            self.register(store)

    def register(self, store: KeyStore) -> None:
        """Register a store, replacing any store of the same kind."""
        if store.kind in self._stores:
            logger.warning(f"Replacing {store.kind.label} key store")
        self._stores[store.kind] = store

    def get(self, kind: KeyKind) -> KeyStore:
        """
        Raises:
            ConfigurationError: If no store serves the kind
        """
        store = self._stores.get(KeyKind(kind))
        if store is None:
            raise ConfigurationError(f"No key store registered for {kind}")
        return store

    def kinds(self) -> List[KeyKind]:
        return list(self._stores)

    def kind_for_algorithm(self, algorithm: str) -> Optional[KeyKind]:
        """Find the kind whose backend knows the algorithm (PQC kinds first)."""
        for kind in (KeyKind.PQC_KEM, KeyKind.PQC_SIGNATURE, KeyKind.CLASSICAL):
            store = self._stores.get(kind)
            if store is not None and store.backend.supports(algorithm):
                return kind
        return None

    def dispose(self) -> None:
        """Release every backend."""
        for store in self._stores.values():
            store.backend.dispose()

    def __contains__(self, kind: KeyKind) -> bool:
        return kind in self._stores

    def __iter__(self) -> Iterator[KeyStore]:
        return iter(self._stores.values())
