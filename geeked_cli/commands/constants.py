"""
CLI Constants Command

Inspect and manage the protocol constants cache.

Usage:
    geeked constants show [--json]
    geeked constants refresh
    geeked constants invalidate <version>
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from argparse import Namespace
from typing import Any

from core.config import RuntimeConfig
from core.constants.store import ConstantStore
from core.schemas.errors import GeekedException

from geeked_cli.config import CLIConfig


logger = logging.getLogger(__name__)


# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1


def _entry_row(entry: Any) -> dict[str, Any]:
    return {
        "version": entry.version,
        "extracted_at": entry.extracted_at.isoformat(),
        "valid": entry.is_valid,
        "abo_keys": len(entry.constants.abo),
        "device_id": entry.constants.device_id,
    }


def show(store: ConstantStore, output_json: bool) -> int:
    entries = store.entries()
    if output_json:
        print(json.dumps([_entry_row(e) for e in entries], indent=2))
        return EXIT_SUCCESS

    print(f"cache_dir: {store.cache_dir}")
    if not entries:
        print("No cached constants")
        return EXIT_SUCCESS
    for e in entries:
        status = "valid" if e.is_valid else "invalidated"
        print(f"  - {e.version} ({status}) extracted {e.extracted_at.isoformat()}")
    return EXIT_SUCCESS


async def refresh(runtime: RuntimeConfig, http_transport: Any = None) -> dict[str, Any]:
    """Re-extract the live script's constants."""
    from orchestrator import build_http_client, build_store
    from core.http.geetest import GeetestTransport

    http = build_http_client(runtime, transport=http_transport)
    try:
        store = build_store(runtime, GeetestTransport(http))
        constants = await store.refresh()
    finally:
        await http.aclose()
    return {
        "version": constants.version,
        "abo_keys": len(constants.abo),
        "mapping": constants.mapping,
    }


def constants_cmd(args: Namespace) -> int:
    """
    Execute the constants command.

    Returns:
        Exit code
    """
    from orchestrator import build_store

    config: CLIConfig = getattr(args, "cli_config", None) or CLIConfig()
    runtime = config.to_runtime_config()
    output_json = getattr(args, "json", False)
    action = getattr(args, "action", None)

    if action == "show":
        # No network: the store's extractor is never used here.
        store = build_store(runtime, transport=None)
        return show(store, output_json)

    if action == "invalidate":
        store = build_store(runtime, transport=None)
        try:
            store.invalidate(args.version)
        except GeekedException as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_RUNTIME_ERROR
        print(f"Invalidated: {args.version}")
        return EXIT_SUCCESS

    if action == "refresh":
        try:
            info = asyncio.run(refresh(runtime))
        except GeekedException as e:
            if output_json:
                print(json.dumps(e.to_error_model().model_dump(), indent=2))
            else:
                print(f"Error: [{e.code}] {e.message}", file=sys.stderr)
            return EXIT_RUNTIME_ERROR
        if output_json:
            print(json.dumps(info, indent=2))
        else:
            print(f"Extracted constants for version {info['version']}")
        return EXIT_SUCCESS

    print("Usage: geeked constants {show|refresh|invalidate <version>}")
    return EXIT_RUNTIME_ERROR
