"""
Module 01 - Schemas
File: errors.py

Purpose: Standard error taxonomy for the protocol client.
Defines both Pydantic models for structured error communication
and Python exceptions for control flow.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Error Codes (Machine-Readable Constants)
# =============================================================================

class ErrorCodes:
    """Stable machine-readable error codes used across the client."""

    # Transport
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"

    # Constants
    DEOBFUSCATION_FAILED = "DEOBFUSCATION_FAILED"
    CACHE_ERROR = "CACHE_ERROR"
    UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"

    # Crypto
    CRYPTO_ERROR = "CRYPTO_ERROR"
    POW_EXHAUSTED = "POW_EXHAUSTED"

    # Verification
    CAPTCHA_FAILED = "CAPTCHA_FAILED"
    SOLVER_UNAVAILABLE = "SOLVER_UNAVAILABLE"
    ROUND_LIMIT_EXCEEDED = "ROUND_LIMIT_EXCEEDED"

    # Lifecycle
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"


# =============================================================================
# Pydantic Error Models (Structured Communication)
# =============================================================================

class GeekedError(BaseModel):
    """
    Base error model for structured error communication.

    Used by the CLI to emit machine-readable failures and by callers that
    prefer error values over exceptions.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=False,
        validate_assignment=True,
    )

    code: str = Field(
        ...,
        description="Stable machine-readable error code",
        examples=[ErrorCodes.CAPTCHA_FAILED],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional structured details about the error",
    )
    retryable: bool = Field(
        default=False,
        description="Whether the operation can be retried",
    )

    def to_exception(self) -> "GeekedException":
        """Convert this error model to a raisable exception."""
        return GeekedException(
            code=self.code,
            message=self.message,
            details=self.details,
            retryable=self.retryable,
        )


# =============================================================================
# Python Exceptions (Control Flow)
# =============================================================================

class GeekedException(Exception):
    """
    Base exception for all protocol client errors.

    Carries structured error information and can be converted to a
    GeekedError model.
    """

    def __init__(
        self,
        message: str,
        code: str = "GEEKED_ERROR",
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.retryable = retryable

    def to_error_model(self) -> GeekedError:
        """Convert this exception to a GeekedError model."""
        return GeekedError(
            code=self.code,
            message=self.message,
            details=self.details,
            retryable=self.retryable,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class NetworkError(GeekedException):
    """Transport or connectivity failure. Retryable with bounded backoff."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if url:
            full_details["url"] = url
        if status_code is not None:
            full_details["status_code"] = status_code
        super().__init__(
            message=message,
            code=ErrorCodes.NETWORK_ERROR,
            details=full_details,
            retryable=True,
        )
        self.url = url
        self.status_code = status_code


class InvalidResponse(GeekedException):
    """The service answered, but not in a shape the client understands."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCodes.INVALID_RESPONSE,
            details=details,
            retryable=False,
        )


class DeobfuscationFailed(GeekedException):
    """A structural marker could not be located in the service script."""

    def __init__(
        self,
        message: str,
        marker: str | None = None,
        version: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if marker:
            full_details["marker"] = marker
        if version:
            full_details["version"] = version
        super().__init__(
            message=message,
            code=ErrorCodes.DEOBFUSCATION_FAILED,
            details=full_details,
            retryable=False,
        )
        self.marker = marker
        self.version = version


class CacheError(GeekedException):
    """The constants cache directory could not be written."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if path:
            full_details["path"] = path
        super().__init__(
            message=message,
            code=ErrorCodes.CACHE_ERROR,
            details=full_details,
            retryable=False,
        )


class CryptoError(GeekedException):
    """Seal, key wrap or proof-of-work computation failed."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCodes.CRYPTO_ERROR,
            details=details,
            retryable=False,
        )


class CaptchaFailed(GeekedException):
    """The service rejected the answer, or a round could not be completed."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: str = ErrorCodes.CAPTCHA_FAILED,
    ) -> None:
        super().__init__(
            message=message,
            code=code,
            details=details,
            retryable=False,
        )


class PowExhausted(CaptchaFailed):
    """No proof-of-work nonce was found within the iteration ceiling."""

    def __init__(
        self,
        message: str,
        iterations: int,
        bits: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        full_details["iterations"] = iterations
        if bits is not None:
            full_details["bits"] = bits
        super().__init__(
            message=message,
            details=full_details,
            code=ErrorCodes.POW_EXHAUSTED,
        )
        self.iterations = iterations
        self.bits = bits


class SolverUnavailable(GeekedException):
    """No solver is registered or configured for the requested challenge type."""

    def __init__(
        self,
        message: str,
        risk_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if risk_type:
            full_details["risk_type"] = risk_type
        super().__init__(
            message=message,
            code=ErrorCodes.SOLVER_UNAVAILABLE,
            details=full_details,
            retryable=False,
        )
        self.risk_type = risk_type


class RoundLimitExceeded(GeekedException):
    """The Continue loop ran past the configured round ceiling."""

    def __init__(
        self,
        message: str,
        max_rounds: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        full_details["max_rounds"] = max_rounds
        super().__init__(
            message=message,
            code=ErrorCodes.ROUND_LIMIT_EXCEEDED,
            details=full_details,
            retryable=False,
        )
        self.max_rounds = max_rounds


class SolveTimeout(GeekedException):
    """The caller's deadline expired before a terminal outcome."""

    def __init__(
        self,
        message: str,
        timeout: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if timeout is not None:
            full_details["timeout"] = timeout
        super().__init__(
            message=message,
            code=ErrorCodes.TIMEOUT,
            details=full_details,
            retryable=True,
        )


class SolveCancelled(GeekedException):
    """A blocking proof-of-work search was stopped through its cancel flag."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCodes.CANCELLED,
            details=details,
            retryable=False,
        )
