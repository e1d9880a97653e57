"""
Composite Signatures

Signs data with both of an account's signing keys (classical and PQC
signature) and verifies such a pair against a sender's cached public keys.

    sign_all:   {"pgp": classical signature, "pqc-sig": PQC signature}
    verify_all: valid only if BOTH signatures verify

Signatures travel as armored blocks:

    -----BEGIN PGP SIGNATURE-----        -----BEGIN PQC SIGNATURE-----
    Algorithm: Ed25519                   Algorithm: Dilithium2
    ...                                  ...
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .contacts.cache import ContactKeyCache, normalize_identifier
from .distribution.armor import armor, extract_algorithm, extract_content
from .exceptions import (
    MalformedPayloadError,
    MissingPrerequisiteKeyError,
    UnknownContactError,
    UnsupportedAlgorithmError,
)
from .keystore.registry import KeyStoreRegistry
from .models import KeyKind

logger = logging.getLogger(__name__)

CLASSICAL_SIGNATURE_HEADER = "PGP SIGNATURE"
PQC_SIGNATURE_HEADER = "PQC SIGNATURE"

CLASSICAL_SLOT = "pgp"
PQC_SLOT = "pqc-sig"

_SIGNING_KINDS = (KeyKind.CLASSICAL, KeyKind.PQC_SIGNATURE)


# =============================================================================
# Models
# =============================================================================


@dataclass
class CompositeSignature:
    """A classical and a PQC signature over the same data."""

    classical_algorithm: str
    classical_signature: bytes
    pqc_algorithm: str
    pqc_signature: bytes

    def to_armored(self) -> Dict[str, str]:
        """Armored blocks keyed by slot name."""
        return {
            CLASSICAL_SLOT: armor(
                self.classical_signature, CLASSICAL_SIGNATURE_HEADER, self.classical_algorithm
            ),
            PQC_SLOT: armor(self.pqc_signature, PQC_SIGNATURE_HEADER, self.pqc_algorithm),
        }

    @classmethod
    def from_armored(cls, blocks: Dict[str, str]) -> "CompositeSignature":
        """
        Parse armored blocks.

        Raises:
            MalformedPayloadError: If a slot, marker or Algorithm header is missing
        """
        try:
            classical_block = blocks[CLASSICAL_SLOT]
            pqc_block = blocks[PQC_SLOT]
        except (KeyError, TypeError) as e:
            raise MalformedPayloadError(f"Missing signature slot: {e}", e) from e

        classical_algorithm = extract_algorithm(classical_block)
        pqc_algorithm = extract_algorithm(pqc_block)
        if not classical_algorithm or not pqc_algorithm:
            raise MalformedPayloadError("Signature block has no Algorithm header")

        return cls(
            classical_algorithm=classical_algorithm,
            classical_signature=extract_content(classical_block, CLASSICAL_SIGNATURE_HEADER),
            pqc_algorithm=pqc_algorithm,
            pqc_signature=extract_content(pqc_block, PQC_SIGNATURE_HEADER),
        )


@dataclass
class SignatureVerification:
    """Outcome of verifying a composite signature."""

    sender: str
    classical_valid: bool = False
    pqc_valid: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.classical_valid and self.pqc_valid

    def to_dict(self) -> Dict[str, object]:
        return {
            "sender": self.sender,
            "valid": self.valid,
            "classical_valid": self.classical_valid,
            "pqc_valid": self.pqc_valid,
            "errors": list(self.errors),
        }


# =============================================================================
# Signer
# =============================================================================


class CompositeSigner:
    """
    Dual classical + PQC signing for one keyring.

    Usage:
        signer = CompositeSigner(registry, cache)
        signature = signer.sign_all("acct-1", data)
        result = signer.verify_all("alice@example.com", data, signature)
    """

    def __init__(self, registry: KeyStoreRegistry, cache: ContactKeyCache):
        self.registry = registry
        self.cache = cache

    def sign_all(self, account_id: str, data: bytes) -> CompositeSignature:
        """
        Sign data with the account's classical and PQC signature keys.

        Raises:
            MissingPrerequisiteKeyError: If either own key pair is missing
            UnsupportedAlgorithmError: If the classical algorithm cannot sign
        """
        signatures = {}
        for kind in _SIGNING_KINDS:
            store = self.registry.get(kind)
            own = store.load_local_private_key(account_id)
            if own is None:
                raise MissingPrerequisiteKeyError(account_id, kind.label)
            algorithm, secret_key = own
            signatures[kind] = (algorithm, store.backend.sign(algorithm, secret_key, data))

        logger.info(
            f"Signed {len(data)} bytes for {account_id} with "
            f"{signatures[KeyKind.CLASSICAL][0]} + {signatures[KeyKind.PQC_SIGNATURE][0]}"
        )
        return CompositeSignature(
            classical_algorithm=signatures[KeyKind.CLASSICAL][0],
            classical_signature=signatures[KeyKind.CLASSICAL][1],
            pqc_algorithm=signatures[KeyKind.PQC_SIGNATURE][0],
            pqc_signature=signatures[KeyKind.PQC_SIGNATURE][1],
        )

    def verify_all(
        self, sender: str, data: bytes, signature: CompositeSignature
    ) -> SignatureVerification:
        """
        Verify both signatures against the sender's cached public keys.

        A signature whose algorithm differs from the cached key's algorithm
        is invalid.

        Raises:
            UnknownContactError: If a cached key of either kind is missing
        """
        sender = normalize_identifier(sender)
        result = SignatureVerification(sender=sender)
        checks = {
            KeyKind.CLASSICAL: (signature.classical_algorithm, signature.classical_signature),
            KeyKind.PQC_SIGNATURE: (signature.pqc_algorithm, signature.pqc_signature),
        }

        for kind, (algorithm, value) in checks.items():
            entry = self.cache.get_contact(sender, kind)
            if entry is None:
                raise UnknownContactError(sender, kind.label)

            if entry.algorithm != algorithm:
                result.errors.append(
                    f"{kind.label} signature uses {algorithm}, sender key is {entry.algorithm}"
                )
                continue

            try:
                valid = self.registry.get(kind).backend.verify(
                    algorithm, entry.public_key, data, value
                )
            except UnsupportedAlgorithmError as e:
                result.errors.append(str(e))
                continue

            if not valid:
                result.errors.append(f"Invalid {kind.label} signature")
            if kind == KeyKind.CLASSICAL:
                result.classical_valid = valid
            else:
                result.pqc_valid = valid

        if result.valid:
            logger.info(f"Verified composite signature from {sender}")
        else:
            logger.warning(f"Composite signature from {sender} rejected: {result.errors}")
        return result
