"""At-rest encryption and key derivation."""

from .codec import HEADER_LENGTH, KeyCodec

__all__ = ["KeyCodec", "HEADER_LENGTH"]
