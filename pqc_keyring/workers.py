"""
Key Operation Worker

Runs key store, key file and cache operations off the calling thread.

Features:
- ThreadPoolExecutor-backed submission returning Futures
- Cooperative cancellation checked between backend calls
- Generation serialized per (account, kind) by the stores themselves;
  distinct accounts and kinds run in parallel
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .exceptions import OperationCancelledError
from .models import KeyKind

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag shared by a caller and one operation."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        if self._event.is_set():
            logger.info(f"Cancelled {operation}")
            raise OperationCancelledError(f"{operation} was cancelled")


@dataclass
class KeyOperation:
    """Handle for a submitted operation."""

    name: str
    future: Future
    token: CancellationToken

    def cancel(self) -> bool:
        """
        Request cancellation.

        A queued operation never starts; a running one stops at its next
        checkpoint. Returns True if the operation had not started yet.
        """
        self.token.cancel()
        return self.future.cancel()

    def result(self, timeout: Optional[float] = None) -> Any:
        return self.future.result(timeout=timeout)

    @property
    def done(self) -> bool:
        return self.future.done()


class KeyOperationWorker:
    """
    Background executor for key operations.

    Usage:
        with KeyOperationWorker(registry) as worker:
            op = worker.generate_key_pair(KeyKind.PQC_KEM, "acct-1", "Kyber512")
            op.result()
    """

    def __init__(self, registry, max_workers: int = 4):
        """
        Initialize worker.

        Args:
            registry: KeyStoreRegistry the key operations run against
            max_workers: Maximum parallel operations
        """
        self.registry = registry
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pqc-keyring"
        )

    def submit(
        self,
        name: str,
        fn: Callable[..., Any],
        *args,
        token: Optional[CancellationToken] = None,
        **kwargs,
    ) -> KeyOperation:
        """
        Submit an arbitrary callable.

        The token is checked before the callable starts. Pass it on in
        kwargs (e.g. cancel_token=token) for checkpoints inside the callable.
        """
        token = token or CancellationToken()

        def run():
            token.raise_if_cancelled(name)
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                logger.error(f"{name} failed: {e}")
                raise

        return KeyOperation(name=name, future=self._executor.submit(run), token=token)

    def generate_key_pair(
        self, kind: KeyKind, account_id: str, algorithm: Optional[str] = None
    ) -> KeyOperation:
        token = CancellationToken()
        store = self.registry.get(kind)
        return self.submit(
            f"generate {kind.value} for {account_id}",
            store.generate_key_pair,
            account_id,
            algorithm,
            token=token,
            cancel_token=token,
        )

    def export_public_key(self, kind: KeyKind, account_id: str) -> KeyOperation:
        store = self.registry.get(kind)
        return self.submit(
            f"export {kind.value} for {account_id}", store.export_public_key, account_id
        )

    def import_remote_public_key(
        self,
        kind: KeyKind,
        account_id: str,
        contact_identifier: str,
        algorithm: str,
        public_key: bytes,
    ) -> KeyOperation:
        store = self.registry.get(kind)
        return self.submit(
            f"import {kind.value} for {contact_identifier}",
            store.import_remote_public_key,
            account_id,
            contact_identifier,
            algorithm,
            public_key,
        )

    def clear_all_keys(
        self,
        kind: KeyKind,
        account_id: str,
        delete_remote_too: bool = False,
        identity: Optional[str] = None,
    ) -> KeyOperation:
        store = self.registry.get(kind)
        return self.submit(
            f"clear {kind.value} for {account_id}",
            store.clear_all_keys,
            account_id,
            delete_remote_too=delete_remote_too,
            identity=identity,
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "KeyOperationWorker":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
