"""
Module 01 - Schemas
File: versioning.py

Purpose: Centralize the on-disk cache format version.
This file must remain tiny and have no imports from other schema files
to avoid circular dependencies.
"""

from typing import Literal

# Current cache entry format - bumped only on incompatible layout changes
CACHE_FORMAT_VERSION: int = 1

# Type alias for the cache format (future-proof for migrations)
CacheFormatVersion = Literal[1]

# Formats this build can still read
SUPPORTED_CACHE_FORMAT_VERSIONS: frozenset[int] = frozenset({1})


class UnsupportedCacheFormatError(ValueError):
    """Raised when a cache entry was written in an unknown format."""

    def __init__(self, version: int, supported: frozenset[int] | None = None) -> None:
        self.version = version
        self.supported = supported or SUPPORTED_CACHE_FORMAT_VERSIONS
        super().__init__(
            f"Unsupported cache format version: {version!r}. "
            f"Supported versions: {sorted(self.supported)}"
        )


def assert_supported_cache_format(version: int) -> None:
    """
    Validate that the given cache format version is readable.

    Args:
        version: The format version stored in a cache entry.

    Raises:
        UnsupportedCacheFormatError: If the version is not supported.
    """
    if version not in SUPPORTED_CACHE_FORMAT_VERSIONS:
        raise UnsupportedCacheFormatError(version)


def is_compatible_cache_format(version: int) -> bool:
    """Check whether a cache entry format can be read without raising."""
    return version in SUPPORTED_CACHE_FORMAT_VERSIONS
