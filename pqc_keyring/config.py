"""
Keyring Configuration

Centralized configuration for key generation, at-rest encryption and storage:
- Environment-based configuration (development, testing, production)
- Algorithm allow-lists per key kind
- Password policy for exported key bundles
- Storage locations

Configuration Hierarchy:
1. Default values
2. Environment variables (PQC_KEYRING_*)
3. Configuration file (JSON)
4. Runtime overrides

Usage:
    config = KeyringConfig.from_environment()
    if config.algorithms.is_allowed(KeyKind.PQC_KEM, "Kyber768"):
        ...
"""

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError
from .models import KeyKind
from .utils.paths import get_data_dir

logger = logging.getLogger(__name__)


# =============================================================================
# Environment Enum
# =============================================================================


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


def is_production_mode() -> bool:
    """Check if running in production mode.

    Production mode is enabled when PQC_KEYRING_PRODUCTION is set to
    '1', 'true', or 'yes' (case-insensitive).
    """
    env_value = os.environ.get("PQC_KEYRING_PRODUCTION", "").lower()
    return env_value in ("1", "true", "yes")


# =============================================================================
# Sections
# =============================================================================


@dataclass
class CryptoConfig:
    """Password policy for KeyCodec. KDF parameters are fixed by the blob format."""

    min_password_length: int = 6


@dataclass
class AlgorithmConfig:
    """Default and allowed algorithms per key kind."""

    default_classical_algorithm: str = "RSA-4096"
    default_sig_algorithm: str = "Dilithium2"
    default_kem_algorithm: str = "Kyber512"

    allowed_classical_algorithms: List[str] = field(
        default_factory=lambda: ["RSA-2048", "RSA-4096", "Ed25519", "X25519"]
    )
    allowed_sig_algorithms: List[str] = field(
        default_factory=lambda: [
            "Dilithium2",
            "Dilithium3",
            "Dilithium5",
            "ML-DSA-44",
            "ML-DSA-65",
            "ML-DSA-87",
            "Falcon-512",
            "Falcon-1024",
        ]
    )
    allowed_kem_algorithms: List[str] = field(
        default_factory=lambda: [
            "Kyber512",
            "Kyber768",
            "Kyber1024",
            "ML-KEM-512",
            "ML-KEM-768",
            "ML-KEM-1024",
        ]
    )

    def allowed_for(self, kind: KeyKind) -> List[str]:
        if kind == KeyKind.CLASSICAL:
            return self.allowed_classical_algorithms
        if kind == KeyKind.PQC_SIGNATURE:
            return self.allowed_sig_algorithms
        return self.allowed_kem_algorithms

    def default_for(self, kind: KeyKind) -> str:
        if kind == KeyKind.CLASSICAL:
            return self.default_classical_algorithm
        if kind == KeyKind.PQC_SIGNATURE:
            return self.default_sig_algorithm
        return self.default_kem_algorithm

    def is_allowed(self, kind: KeyKind, algorithm: Optional[str]) -> bool:
        """Check if algorithm is allowed for the key kind."""
        return bool(algorithm) and algorithm in self.allowed_for(kind)


@dataclass
class StorageConfig:
    """Storage locations and at-rest protection of own secret keys."""

    data_directory: Optional[Path] = None
    contact_cache_file: str = "pqc_contacts.json"
    # Passphrase protecting own secret keys in the local store
    store_passphrase: Optional[str] = None

    @property
    def resolved_directory(self) -> Path:
        return self.data_directory or get_data_dir()

    @property
    def contact_cache_path(self) -> Path:
        return self.resolved_directory / self.contact_cache_file

    def key_store_path(self, kind: KeyKind) -> Path:
        return self.resolved_directory / f"{kind.value}_keys.json"


# =============================================================================
# Main Configuration
# =============================================================================


@dataclass
class KeyringConfig:
    """Complete keyring configuration."""

    environment: Environment = Environment.DEVELOPMENT
    backend: str = "oqs"  # "oqs" or "mock"
    worker_threads: int = 4

    crypto: CryptoConfig = field(default_factory=CryptoConfig)
    algorithms: AlgorithmConfig = field(default_factory=AlgorithmConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def for_environment(cls, env: Environment) -> "KeyringConfig":
        """Get configuration for a specific environment."""
        if env == Environment.PRODUCTION:
            return cls(
                environment=env,
                backend="oqs",
                crypto=CryptoConfig(min_password_length=12),
            )
        if env == Environment.TESTING:
            return cls(
                environment=env,
                backend="mock",
                worker_threads=2,
                crypto=CryptoConfig(min_password_length=1),
            )
        return cls(environment=env)

    @classmethod
    def from_environment(cls) -> "KeyringConfig":
        """Load configuration from environment variables."""
        env_name = os.environ.get("PQC_KEYRING_ENVIRONMENT", "development")
        try:
            env = Environment(env_name.lower())
        except ValueError:
            logger.warning(f"Unknown environment {env_name}, using development")
            env = Environment.DEVELOPMENT

        config = cls.for_environment(env)
        config._apply_env_overrides()
        return config

    @classmethod
    def from_file(cls, path: Path) -> "KeyringConfig":
        """Load configuration from JSON file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read configuration {path}", e) from e

        try:
            env = Environment(data.get("environment", "development"))
        except ValueError as e:
            raise ConfigurationError(f"Unknown environment in {path}", e) from e

        config = cls.for_environment(env)
        config._apply_dict_overrides(data)
        return config

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        env_mappings = {
            "PQC_KEYRING_BACKEND": ("backend", None, str),
            "PQC_KEYRING_WORKERS": ("worker_threads", None, int),
            "PQC_KEYRING_MIN_PASSWORD_LENGTH": ("crypto", "min_password_length", int),
            "PQC_KEYRING_DATA_DIR": ("storage", "data_directory", Path),
            "PQC_KEYRING_STORE_PASSPHRASE": ("storage", "store_passphrase", str),
            "PQC_KEYRING_DEFAULT_SIG": ("algorithms", "default_sig_algorithm", str),
            "PQC_KEYRING_DEFAULT_KEM": ("algorithms", "default_kem_algorithm", str),
        }

        for env_var, (section, attr, type_) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is None:
                continue
            try:
                typed_value = Path(value) if type_ == Path else type_(value)
            except (ValueError, TypeError) as e:
                logger.warning(f"Invalid value for {env_var}: {e}")
                continue

            if attr is None:
                setattr(self, section, typed_value)
            else:
                setattr(getattr(self, section), attr, typed_value)

    def _apply_dict_overrides(self, data: Dict[str, Any]) -> None:
        """Apply dictionary overrides."""
        section_map = {
            "crypto": self.crypto,
            "algorithms": self.algorithms,
            "storage": self.storage,
        }

        for section_name, section_data in data.items():
            if section_name in section_map and isinstance(section_data, dict):
                section = section_map[section_name]
                for key, value in section_data.items():
                    if not hasattr(section, key):
                        continue
                    if key == "data_directory" and value is not None:
                        value = Path(value)
                    setattr(section, key, value)

        for key in ["backend", "worker_threads"]:
            if key in data:
                setattr(self, key, data[key])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (the store passphrase is never included)."""
        return {
            "environment": self.environment.value,
            "backend": self.backend,
            "worker_threads": self.worker_threads,
            "crypto": {
                "min_password_length": self.crypto.min_password_length,
            },
            "algorithms": {
                "default_classical_algorithm": self.algorithms.default_classical_algorithm,
                "default_sig_algorithm": self.algorithms.default_sig_algorithm,
                "default_kem_algorithm": self.algorithms.default_kem_algorithm,
                "allowed_classical_algorithms": list(self.algorithms.allowed_classical_algorithms),
                "allowed_sig_algorithms": list(self.algorithms.allowed_sig_algorithms),
                "allowed_kem_algorithms": list(self.algorithms.allowed_kem_algorithms),
            },
            "storage": {
                "data_directory": (
                    str(self.storage.data_directory) if self.storage.data_directory else None
                ),
                "contact_cache_file": self.storage.contact_cache_file,
            },
        }

    def save(self, path: Path) -> None:
        """Save configuration to file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.backend not in ("oqs", "mock"):
            errors.append(f"Unknown backend: {self.backend}")
        if self.environment == Environment.PRODUCTION:
            if self.backend == "mock":
                errors.append("Mock backend not allowed in production")
            if self.crypto.min_password_length < 8:
                errors.append("Minimum password length must be at least 8 in production")

        if self.crypto.min_password_length < 1:
            errors.append("Minimum password length must be positive")
        if self.worker_threads < 1:
            errors.append("At least one worker thread is required")

        for kind in KeyKind:
            default = self.algorithms.default_for(kind)
            if not self.algorithms.is_allowed(kind, default):
                errors.append(f"Default {kind.label} algorithm {default} is not allowed")

        return errors
