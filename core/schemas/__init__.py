"""
Module 01 - Schemas
File: __init__.py

Purpose: Export the public API for the schemas module.
This is the main entry point for other modules to import schema definitions.
"""

# Version constants
from .versioning import (
    CACHE_FORMAT_VERSION,
    SUPPORTED_CACHE_FORMAT_VERSIONS,
    CacheFormatVersion,
    UnsupportedCacheFormatError,
    assert_supported_cache_format,
    is_compatible_cache_format,
)

# Error models and exceptions
from .errors import (
    CacheError,
    CaptchaFailed,
    CryptoError,
    DeobfuscationFailed,
    ErrorCodes,
    GeekedError,
    GeekedException,
    InvalidResponse,
    NetworkError,
    PowExhausted,
    RoundLimitExceeded,
    SolveCancelled,
    SolveTimeout,
    SolverUnavailable,
)

# Protocol constants
from .constants import (
    DEFAULT_RSA_EXPONENT,
    DEFAULT_RSA_MODULUS,
    SUPPORTED_HASH_FUNCTIONS,
    CipherParams,
    ConstantsCacheEntry,
    EnvelopeFields,
    PowParams,
    ProtocolConstants,
    RsaKeyMaterial,
    ScriptVersion,
    WireFormat,
)

# Wire models
from .challenge import (
    Challenge,
    Classification,
    GeekedResult,
    PowDetail,
    RiskType,
    VerifyResponse,
)


__all__ = [
    # Versioning
    "CACHE_FORMAT_VERSION",
    "SUPPORTED_CACHE_FORMAT_VERSIONS",
    "CacheFormatVersion",
    "UnsupportedCacheFormatError",
    "assert_supported_cache_format",
    "is_compatible_cache_format",
    # Errors
    "ErrorCodes",
    "GeekedError",
    "GeekedException",
    "NetworkError",
    "InvalidResponse",
    "DeobfuscationFailed",
    "CacheError",
    "CryptoError",
    "CaptchaFailed",
    "PowExhausted",
    "SolverUnavailable",
    "RoundLimitExceeded",
    "SolveTimeout",
    "SolveCancelled",
    # Constants
    "DEFAULT_RSA_MODULUS",
    "DEFAULT_RSA_EXPONENT",
    "SUPPORTED_HASH_FUNCTIONS",
    "ProtocolConstants",
    "RsaKeyMaterial",
    "CipherParams",
    "PowParams",
    "EnvelopeFields",
    "WireFormat",
    "ScriptVersion",
    "ConstantsCacheEntry",
    # Wire
    "RiskType",
    "Classification",
    "PowDetail",
    "Challenge",
    "GeekedResult",
    "VerifyResponse",
]
