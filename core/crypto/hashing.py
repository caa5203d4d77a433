"""
Module 03 - Hashing Utilities
Named hash functions for the proof-of-work exchange.

The service names the hash function per challenge (``pow_detail.hashfunc``);
this module resolves that name and produces lowercase hex digests, which is
the form both the PoW predicate and the ``pow_sign`` field use.
"""
from __future__ import annotations

import hashlib
from typing import Any, Callable

from core.schemas.errors import CryptoError


HASH_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "md5": hashlib.md5,
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}

# Largest hex digit allowed right after the zero prefix, by leftover bits.
_REMAINDER_THRESHOLDS = {1: "7", 2: "3", 3: "1"}


def get_hash_function(name: str) -> Callable[..., Any]:
    """
    Resolve a service hash function name.

    Raises:
        CryptoError: If the name is not one the protocol defines.
    """
    try:
        return HASH_FUNCTIONS[name.lower()]
    except KeyError:
        raise CryptoError(
            f"Unsupported hash function: {name}",
            details={"hashfunc": name, "supported": sorted(HASH_FUNCTIONS)},
        ) from None


def hex_digest(name: str, data: bytes) -> str:
    """
    Hash raw bytes with the named function.

    Example:
        >>> hex_digest("md5", b"hello")
        '5d41402abc4b2a76b9719d911017c592'
    """
    return get_hash_function(name)(data).hexdigest()


def meets_difficulty(digest_hex: str, bits: int) -> bool:
    """
    Check the PoW predicate for a hex digest.

    ``bits // 4`` leading hex zeros are required. Leftover bits constrain
    the following digit: 1 bit -> <= '7', 2 bits -> <= '3', 3 bits -> <= '1'.
    """
    zeros, remainder = divmod(bits, 4)
    if not digest_hex.startswith("0" * zeros):
        return False
    if remainder == 0:
        return True
    if len(digest_hex) <= zeros:
        return False
    return digest_hex[zeros] <= _REMAINDER_THRESHOLDS[remainder]
