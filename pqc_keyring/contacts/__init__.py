"""Contact public keys and KEM shared secrets."""

from .cache import ContactEntry, ContactKeyCache
from .kem_exchange import KemExchange

__all__ = ["ContactEntry", "ContactKeyCache", "KemExchange"]
