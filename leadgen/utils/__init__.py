"""Utilities package"""

from .hash_utils import sha256_hex, short_hash

__all__ = ["sha256_hex", "short_hash"]
