"""
CLI Configuration

Configuration for the geeked CLI. Supports environment variables and a
JSON configuration file; protocol settings are turned into a
RuntimeConfig for the client.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from core.config import RuntimeConfig


# Environment variable prefix
ENV_PREFIX = "GEEKED_"


@dataclass
class CLIConfig:
    """Main CLI configuration."""

    # Network binding
    proxy: str | None = None
    local_address: str | None = None

    # Protocol settings (None = RuntimeConfig default)
    cache_dir: str | None = None
    max_rounds: int | None = None
    pow_workers: int | None = None

    # Optional YAML file with a full RuntimeConfig
    runtime_config: str | None = None

    # Overall solve deadline in seconds (None = no deadline)
    solve_timeout: float | None = None

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    # Output
    default_output_format: str = "human"  # "human" or "json"

    def to_runtime_config(self) -> RuntimeConfig:
        """
        RuntimeConfig for the client.

        Order: ``runtime_config`` YAML (or defaults), then values from this
        file, then GEEKED_* environment variables.
        """
        if self.runtime_config:
            runtime = RuntimeConfig.from_yaml(self.runtime_config)
        else:
            runtime = RuntimeConfig()

        if self.proxy:
            runtime.proxy = self.proxy
        if self.local_address:
            runtime.local_address = self.local_address
        protocol: dict[str, Any] = {}
        if self.cache_dir:
            protocol["cache_dir"] = self.cache_dir
        if self.max_rounds is not None:
            protocol["max_rounds"] = self.max_rounds
        if self.pow_workers is not None:
            protocol["pow_workers"] = self.pow_workers
        if protocol:
            runtime.protocol = replace(runtime.protocol, **protocol)

        return runtime.with_env_overrides()

    def to_dict(self) -> dict[str, Any]:
        return {
            "proxy": self.proxy,
            "local_address": self.local_address,
            "cache_dir": self.cache_dir,
            "max_rounds": self.max_rounds,
            "pow_workers": self.pow_workers,
            "runtime_config": self.runtime_config,
            "solve_timeout": self.solve_timeout,
            "log_level": self.log_level,
            "log_file": self.log_file,
            "default_output_format": self.default_output_format,
        }


def load_config_from_env() -> CLIConfig:
    """Load CLI-only settings from environment variables."""
    config = CLIConfig()

    if os.getenv(f"{ENV_PREFIX}SOLVE_TIMEOUT"):
        config.solve_timeout = float(os.getenv(f"{ENV_PREFIX}SOLVE_TIMEOUT", "0")) or None
    if os.getenv(f"{ENV_PREFIX}RUNTIME_CONFIG"):
        config.runtime_config = os.getenv(f"{ENV_PREFIX}RUNTIME_CONFIG")

    # Logging
    config.log_level = os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO")
    config.log_file = os.getenv(f"{ENV_PREFIX}LOG_FILE")

    if os.getenv(f"{ENV_PREFIX}OUTPUT_FORMAT"):
        config.default_output_format = os.getenv(f"{ENV_PREFIX}OUTPUT_FORMAT", "human")

    return config


def load_config_from_file(path: Path) -> CLIConfig:
    """Load configuration from a JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    config = CLIConfig()

    config.proxy = data.get("proxy", config.proxy)
    config.local_address = data.get("local_address", config.local_address)

    config.cache_dir = data.get("cache_dir", config.cache_dir)
    config.max_rounds = data.get("max_rounds", config.max_rounds)
    config.pow_workers = data.get("pow_workers", config.pow_workers)
    config.runtime_config = data.get("runtime_config", config.runtime_config)
    config.solve_timeout = data.get("solve_timeout", config.solve_timeout)

    # Logging
    config.log_level = data.get("log_level", config.log_level)
    config.log_file = data.get("log_file", config.log_file)

    config.default_output_format = data.get("default_output_format", config.default_output_format)

    return config


def load_config(config_path: Path | None = None) -> CLIConfig:
    """
    Load configuration from file and/or environment.

    Environment variables override file settings.

    Args:
        config_path: Optional path to config file

    Returns:
        Merged configuration
    """
    # Start with defaults
    config = CLIConfig()

    # Load from file if provided
    if config_path and config_path.exists():
        config = load_config_from_file(config_path)

    # Check for default config locations
    default_paths = [
        Path.cwd() / "geeked.json",
        Path.cwd() / ".geeked.json",
        Path.home() / ".config" / "geeked" / "config.json",
    ]

    if config_path is None:
        for default_path in default_paths:
            if default_path.exists():
                config = load_config_from_file(default_path)
                break

    # Override with environment variables
    env_config = load_config_from_env()

    if os.getenv(f"{ENV_PREFIX}SOLVE_TIMEOUT"):
        config.solve_timeout = env_config.solve_timeout
    if os.getenv(f"{ENV_PREFIX}RUNTIME_CONFIG"):
        config.runtime_config = env_config.runtime_config
    if os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
        config.log_level = env_config.log_level
    if os.getenv(f"{ENV_PREFIX}LOG_FILE"):
        config.log_file = env_config.log_file
    if os.getenv(f"{ENV_PREFIX}OUTPUT_FORMAT"):
        config.default_output_format = env_config.default_output_format

    return config


def get_default_config_template() -> str:
    """Get a template configuration file."""
    return """{
  "proxy": null,
  "local_address": null,
  "cache_dir": "~/.cache/geeked",
  "max_rounds": 10,
  "pow_workers": 1,
  "runtime_config": null,
  "solve_timeout": 60,
  "log_level": "INFO",
  "log_file": null,
  "default_output_format": "human"
}
"""
