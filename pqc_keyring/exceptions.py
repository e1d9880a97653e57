"""
PQC Keyring Exceptions

Typed errors for key store, contact cache, codec and distribution operations.
Callers (UI, CLI, background workers) map these to user-visible messages.
"""

from typing import Optional


class KeyringError(Exception):
    """Base exception for keyring operations."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class WeakInputError(KeyringError):
    """Password or other secret input does not meet the policy floor."""

    pass


class UnsupportedAlgorithmError(KeyringError):
    """Algorithm is unknown to, or disabled in, the backend."""

    def __init__(self, algorithm: Optional[str], kind: Optional[str] = None):
        self.algorithm = algorithm
        self.kind = kind
        where = f" for {kind}" if kind else ""
        super().__init__(f"Unsupported algorithm{where}: {algorithm}")


class KeyLengthMismatchError(KeyringError):
    """Public key length does not match the algorithm's expected length."""

    def __init__(self, algorithm: str, expected: int, actual: int):
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Public key length {actual} does not match expected length "
            f"{expected} for algorithm {algorithm}"
        )


class UnknownContactError(KeyringError):
    """No contact cache entry exists for the identifier."""

    def __init__(self, identifier: str, kind: Optional[str] = None):
        self.identifier = identifier
        self.kind = kind
        suffix = f" ({kind})" if kind else ""
        super().__init__(f"Unknown contact: {identifier}{suffix}")


class MissingPrerequisiteKeyError(KeyringError):
    """A required own key pair is missing (e.g. classical key for announcements)."""

    def __init__(self, account_id: str, kind: str):
        self.account_id = account_id
        self.kind = kind
        super().__init__(f"Account {account_id} has no {kind} key pair")


class DecryptionError(KeyringError):
    """Decryption failed: wrong password or corrupted data (indistinguishable)."""

    def __init__(self, message: str = "Decryption failed", original_error: Optional[Exception] = None):
        super().__init__(message, original_error)


class StorageIOError(KeyringError):
    """File open/read/write failure."""

    def __init__(
        self,
        message: str,
        operation: str,
        original_error: Optional[Exception] = None,
    ):
        self.operation = operation
        super().__init__(message, original_error)


class MalformedPayloadError(KeyringError):
    """Import file or announcement payload could not be parsed."""

    pass


class AlgorithmSwitchError(KeyringError):
    """Algorithm change attempted while a key pair for another algorithm exists."""

    def __init__(self, account_id: str, current: str, requested: str):
        self.account_id = account_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot switch {account_id} from {current} to {requested}: "
            f"clear the existing key pair first"
        )


class AlgorithmMismatchError(KeyringError):
    """Stored key pair does not match its declared or selected algorithm."""

    pass


class OperationCancelledError(KeyringError):
    """A background operation was cancelled before it committed."""

    pass


class BackendUnavailableError(KeyringError):
    """The native crypto library required by a backend is not installed."""

    pass


class ConfigurationError(KeyringError):
    """Invalid keyring configuration."""

    pass
