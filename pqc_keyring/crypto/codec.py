"""
Key Codec

Symmetric primitives protecting key material at rest:
- Password-based key derivation (PBKDF2-HMAC-SHA256)
- AES-256-CBC with PKCS#7 padding for exported key bundles
- HKDF-SHA256 for deriving working keys from KEM shared secrets

Blob format produced by encrypt():

    salt (16 bytes) || iv (16 bytes) || ciphertext

There are no length fields; ciphertext is everything after byte 32. The
blob does not record KDF parameters, so encrypt() and decrypt() always use
KDF_ITERATIONS and KEY_BITS.
"""

import logging
import secrets
from typing import Optional

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import CryptoConfig
from ..exceptions import DecryptionError, WeakInputError

logger = logging.getLogger(__name__)


SALT_LENGTH = 16
IV_LENGTH = 16
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH
BLOCK_BITS = 128

# Fixed by the blob format
KDF_ITERATIONS = 100_000
KEY_BITS = 256


class KeyCodec:
    """
    Password-based encryption of key bundles.

    Every encrypt() call draws a fresh salt and IV, so encrypting the same
    plaintext twice never yields the same blob. Decryption failures of any
    kind (wrong password, truncated or corrupted blob, bad padding) raise the
    same DecryptionError so callers cannot be used as a padding oracle.

    The configured password floor applies when choosing a password
    (encrypt), never when entering one (decrypt).
    """

    def __init__(self, config: Optional[CryptoConfig] = None):
        self.config = config or CryptoConfig()

    # =========================================================================
    # Key Derivation
    # =========================================================================

    def derive_key(
        self,
        password: str,
        salt: bytes,
        iterations: int = KDF_ITERATIONS,
        output_bits: int = KEY_BITS,
    ) -> bytes:
        """
        Derive a symmetric key from a password using PBKDF2.

        Args:
            password: User password
            salt: Random salt
            iterations: PBKDF2 iterations (default 100,000)
            output_bits: Key size in bits (default 256)

        Returns:
            Derived key bytes

        Raises:
            WeakInputError: If the password is empty
        """
        if not password:
            raise WeakInputError("Password must not be empty")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=output_bits // 8,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    def check_password(self, password: Optional[str]) -> None:
        """Enforce the minimum password length for a new password."""
        if not password:
            raise WeakInputError("Password must not be empty")
        if len(password) < self.config.min_password_length:
            raise WeakInputError(
                f"Password must be at least {self.config.min_password_length} characters"
            )

    # =========================================================================
    # Encryption
    # =========================================================================

    def encrypt(self, plaintext: bytes, password: str) -> bytes:
        """
        Encrypt a byte blob under a password.

        Returns:
            salt || iv || ciphertext

        Raises:
            WeakInputError: If the password is below the policy floor
        """
        self.check_password(password)
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        salt = secrets.token_bytes(SALT_LENGTH)
        iv = secrets.token_bytes(IV_LENGTH)
        key = self.derive_key(password, salt)

        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return salt + iv + ciphertext

    def decrypt(self, blob: bytes, password: str) -> bytes:
        """
        Decrypt a blob produced by encrypt().

        Raises:
            WeakInputError: If the password is empty
            DecryptionError: On wrong password or corrupted/truncated data
        """
        if not password:
            raise WeakInputError("Password must not be empty")

        ciphertext = blob[HEADER_LENGTH:]
        if len(blob) <= HEADER_LENGTH or len(ciphertext) % (BLOCK_BITS // 8) != 0:
            logger.warning("Rejected malformed encrypted blob")
            raise DecryptionError()

        salt = blob[:SALT_LENGTH]
        iv = blob[SALT_LENGTH:HEADER_LENGTH]
        key = self.derive_key(password, salt)

        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            logger.warning("Decryption failed")
            raise DecryptionError(original_error=e) from None

    # =========================================================================
    # Shared Secret Derivation
    # =========================================================================

    @staticmethod
    def hkdf_expand(input_key_material: bytes, info: str, output_length: int) -> bytes:
        """
        HKDF-SHA256 extract-then-expand with a zero salt.

        Args:
            input_key_material: Raw secret (e.g. KEM shared secret)
            info: Context string bound into the output
            output_length: Number of bytes to produce

        Returns:
            Derived key material
        """
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=output_length,
            salt=None,  # zero-filled, hash length
            info=info.encode("utf-8"),
        )
        return hkdf.derive(input_key_material)
