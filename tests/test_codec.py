"""
Tests for the Key Codec

Password-based blob encryption and HKDF derivation.
"""

import pytest

from pqc_keyring.config import CryptoConfig, Environment, KeyringConfig
from pqc_keyring.crypto.codec import HEADER_LENGTH, KDF_ITERATIONS, KeyCodec
from pqc_keyring.exceptions import DecryptionError, WeakInputError


class TestKeyDerivation:
    """Tests for PBKDF2 key derivation."""

    def test_deterministic(self, codec):
        """Same password and salt give the same key."""
        salt = b"\x01" * 16
        assert codec.derive_key("password", salt) == codec.derive_key("password", salt)

    def test_salt_changes_key(self, codec):
        assert codec.derive_key("password", b"\x01" * 16) != codec.derive_key(
            "password", b"\x02" * 16
        )

    def test_output_size(self, codec):
        assert len(codec.derive_key("password", b"\x00" * 16)) == 32
        assert len(codec.derive_key("password", b"\x00" * 16, output_bits=128)) == 16

    def test_known_vector(self):
        """PBKDF2-HMAC-SHA256 with 1 iteration (RFC 7914 style check)."""
        codec = KeyCodec(CryptoConfig(min_password_length=1))
        key = codec.derive_key("passwd", b"salt", iterations=1, output_bits=256)
        assert key.hex() == (
            "55ac046e56e3089fec1691c22544b605f94185216dde0465e68b9d57c20dacbc"
        )

    def test_empty_password_rejected(self, codec):
        with pytest.raises(WeakInputError):
            codec.derive_key("", b"\x00" * 16)

    def test_default_iterations(self, codec):
        salt = b"\x03" * 16
        assert codec.derive_key("password", salt) == codec.derive_key(
            "password", salt, iterations=KDF_ITERATIONS
        )
        assert codec.derive_key("password", salt) != codec.derive_key(
            "password", salt, iterations=1_000
        )


class TestEncryption:
    """Tests for encrypt / decrypt."""

    def test_round_trip(self, codec):
        plaintext = b"secret key material"
        blob = codec.encrypt(plaintext, "correct horse")
        assert codec.decrypt(blob, "correct horse") == plaintext

    def test_round_trip_empty_plaintext(self, codec):
        blob = codec.encrypt(b"", "password")
        assert len(blob) == HEADER_LENGTH + 16
        assert codec.decrypt(blob, "password") == b""

    def test_blob_layout(self, codec):
        """salt(16) || iv(16) || ciphertext padded to the block size."""
        blob = codec.encrypt(b"x" * 20, "password")
        assert len(blob) == HEADER_LENGTH + 32

    def test_encryptions_differ(self, codec):
        """Fresh salt and IV per call."""
        first = codec.encrypt(b"same input", "password")
        second = codec.encrypt(b"same input", "password")
        assert first != second
        assert first[:16] != second[:16]
        assert first[16:32] != second[16:32]

    def test_wrong_password(self, codec):
        """Wrong password raises DecryptionError and never yields the plaintext."""
        plaintext = b"payload that is long enough"
        rejected = 0
        # Unauthenticated CBC: a wrong key unpads cleanly about 1 time in 256
        for _ in range(5):
            blob = codec.encrypt(plaintext, "correct")
            try:
                assert codec.decrypt(blob, "wrong") != plaintext
            except DecryptionError:
                rejected += 1
        assert rejected >= 4

    def test_truncated_blob(self, codec):
        blob = codec.encrypt(b"payload", "password")
        with pytest.raises(DecryptionError):
            codec.decrypt(blob[:HEADER_LENGTH], "password")
        with pytest.raises(DecryptionError):
            codec.decrypt(blob[:-3], "password")

    def test_corrupted_blob(self, codec):
        """Flipping the last IV byte turns the padding byte into garbage."""
        blob = bytearray(codec.encrypt(b"payload", "password"))
        blob[HEADER_LENGTH - 1] ^= 0xFF
        with pytest.raises(DecryptionError):
            codec.decrypt(bytes(blob), "password")

    def test_decrypt_requires_password(self, codec):
        blob = codec.encrypt(b"payload", "password")
        with pytest.raises(WeakInputError):
            codec.decrypt(blob, "")


class TestPasswordPolicy:
    """Tests for the password floor and fixed blob parameters."""

    def test_default_config_accepts_short_scenario_password(self):
        codec = KeyCodec(CryptoConfig())
        blob = codec.encrypt(b"payload", "correct")
        assert codec.decrypt(blob, "correct") == b"payload"

    def test_default_config_short_wrong_password_is_decryption_error(self):
        """The floor never turns a wrong password into WeakInputError."""
        codec = KeyCodec(CryptoConfig())
        rejected = 0
        for _ in range(5):
            blob = codec.encrypt(b"payload that is long enough", "correct")
            try:
                assert codec.decrypt(blob, "wrong") != b"payload that is long enough"
            except DecryptionError:
                rejected += 1
        assert rejected >= 4

    def test_floor_applies_to_encrypt(self):
        codec = KeyCodec(CryptoConfig(min_password_length=12))
        with pytest.raises(WeakInputError):
            codec.encrypt(b"payload", "too-short")

    def test_floor_does_not_apply_to_decrypt(self):
        blob = KeyCodec(CryptoConfig(min_password_length=1)).encrypt(b"payload", "abc")
        strict = KeyCodec(CryptoConfig(min_password_length=12))
        assert strict.decrypt(blob, "abc") == b"payload"

    def test_blobs_portable_across_environments(self):
        """Production and development codecs read each other's blobs."""
        production = KeyCodec(KeyringConfig.for_environment(Environment.PRODUCTION).crypto)
        development = KeyCodec(KeyringConfig.for_environment(Environment.DEVELOPMENT).crypto)
        testing = KeyCodec(KeyringConfig.for_environment(Environment.TESTING).crypto)

        blob = production.encrypt(b"payload", "correct-horse-battery")
        assert development.decrypt(blob, "correct-horse-battery") == b"payload"
        assert testing.decrypt(blob, "correct-horse-battery") == b"payload"


class TestHkdf:
    """Tests for HKDF-SHA256 expansion."""

    def test_deterministic(self):
        first = KeyCodec.hkdf_expand(b"\x0b" * 22, "info", 42)
        assert first == KeyCodec.hkdf_expand(b"\x0b" * 22, "info", 42)
        assert len(first) == 42

    def test_info_changes_output(self):
        assert KeyCodec.hkdf_expand(b"ikm", "a", 32) != KeyCodec.hkdf_expand(b"ikm", "b", 32)

    def test_rfc5869_zero_salt_vector(self):
        """RFC 5869 test case 3 (zero-length salt, empty info)."""
        okm = KeyCodec.hkdf_expand(b"\x0b" * 22, "", 42)
        assert okm.hex() == (
            "8da4e775a563c18f715f802a063c5a31b8a11f5c5ee1879ec3454e5f3c738d2d"
            "9d201395faa4b61a96c8"
        )
