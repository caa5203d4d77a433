"""
Runtime Configuration Module

Provides configuration loading and management for the protocol client.
"""

from .runtime import (
    DEFAULT_DISCOVERY_CAPTCHA_ID,
    HttpConfig,
    ProtocolConfig,
    RuntimeConfig,
    get_default_config,
    set_default_config,
)

__all__ = [
    "DEFAULT_DISCOVERY_CAPTCHA_ID",
    "HttpConfig",
    "ProtocolConfig",
    "RuntimeConfig",
    "get_default_config",
    "set_default_config",
]
