"""
HTTP Module

Async HTTP client and the service-specific JSONP transport.
"""

from .client import AsyncHttpClient, HttpResponse, RETRYABLE_STATUS_CODES
from .geetest import GeetestTransport, parse_jsonp, random_callback, version_from_static_path

__all__ = [
    "AsyncHttpClient",
    "HttpResponse",
    "RETRYABLE_STATUS_CODES",
    "GeetestTransport",
    "parse_jsonp",
    "random_callback",
    "version_from_static_path",
]
