"""
CLI Main Entry Point

Parses command-line arguments and dispatches to subcommands.

Usage:
    python -m geeked_cli solve <captcha_id> --type slide [--proxy URL] [--user-info S]
                               [--local-address IP] [--timeout S] [--json]
    python -m geeked_cli constants show [--json]
    python -m geeked_cli constants refresh [--json]
    python -m geeked_cli constants invalidate <version>
    python -m geeked_cli solvers [--json]
    python -m geeked_cli config --init

Environment Variables:
    GEEKED_LOG_LEVEL            Log level (default: INFO)
    GEEKED_LOG_FILE             Also log to this file
    GEEKED_SOLVE_TIMEOUT        Default solve deadline in seconds
    GEEKED_RUNTIME_CONFIG       YAML file with runtime settings
    GEEKED_HTTP_PROXY           Proxy URL
    GEEKED_CACHE_DIR            Constants cache directory
    GEEKED_MAX_ROUNDS           Continue-loop ceiling
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Sequence

from core.schemas.challenge import RiskType

from geeked_cli.commands import constants, solve
from geeked_cli.config import get_default_config_template, load_config


# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_VERIFICATION_FAILED = 2


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure logging for the CLI."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="geeked",
        description="Geeked CLI - Solve captcha challenges and manage protocol constants.",
    )
    parser.add_argument(
        "--version", action="version", version="%(prog)s 0.1.0"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Path to configuration file (default: ./geeked.json or ~/.config/geeked/config.json)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides config)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- solve command ---
    solve_parser = subparsers.add_parser(
        "solve",
        help="Solve one captcha",
        description="Run the verification loop and print the resulting seccode.",
    )
    solve_parser.add_argument(
        "captcha_id",
        type=str,
        help="Site captcha id",
    )
    solve_parser.add_argument(
        "--type", "-t",
        type=str,
        required=True,
        choices=[r.value for r in RiskType],
        help="Challenge type",
    )
    solve_parser.add_argument(
        "--proxy",
        type=str,
        default=None,
        help="Proxy URL (http, https or socks5)",
    )
    solve_parser.add_argument(
        "--user-info",
        type=str,
        default=None,
        help="Site-specific binding string sent with the challenge request",
    )
    solve_parser.add_argument(
        "--local-address",
        type=str,
        default=None,
        help="Source IP address for outgoing connections",
    )
    solve_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall deadline in seconds (default: from config, else none)",
    )
    solve_parser.add_argument(
        "--icon-classifier",
        type=str,
        default=None,
        help="module:callable labelling icon crops with a direction (enables icon)",
    )
    solve_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Output machine-readable JSON summary",
    )
    solve_parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Print tracebacks for unexpected errors",
    )
    solve_parser.set_defaults(func=solve.solve_cmd)

    # --- constants command ---
    constants_parser = subparsers.add_parser(
        "constants",
        help="Inspect or manage the constants cache",
        description="Show cached constant sets, force re-extraction, or invalidate a version.",
    )
    constants_sub = constants_parser.add_subparsers(dest="action", help="Action")

    show_parser = constants_sub.add_parser("show", help="List cached constant sets")
    show_parser.add_argument("--json", action="store_true", help="JSON output")

    refresh_parser = constants_sub.add_parser("refresh", help="Re-extract the live version")
    refresh_parser.add_argument("--json", action="store_true", help="JSON output")

    invalidate_parser = constants_sub.add_parser("invalidate", help="Invalidate a cached version")
    invalidate_parser.add_argument("version", type=str, help="Script version, e.g. v1.9.3-26b399")

    constants_parser.set_defaults(func=constants.constants_cmd)

    # --- solvers command ---
    solvers_parser = subparsers.add_parser(
        "solvers",
        help="List registered solvers",
        description="Show the built-in solvers and their capabilities.",
    )
    solvers_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="JSON output",
    )
    solvers_parser.set_defaults(func=solvers_cmd)

    # --- config command ---
    config_parser = subparsers.add_parser(
        "config",
        help="Manage CLI configuration",
        description="Initialize or display configuration.",
    )
    config_parser.add_argument(
        "--init",
        action="store_true",
        default=False,
        help="Create a template configuration file",
    )
    config_parser.add_argument(
        "--show",
        action="store_true",
        default=False,
        help="Show current configuration",
    )
    config_parser.add_argument(
        "--path",
        type=str,
        default="geeked.json",
        help="Path for config file (default: geeked.json)",
    )
    config_parser.set_defaults(func=config_cmd)

    return parser


def config_cmd(args: argparse.Namespace) -> int:
    """Handle config command."""
    if args.init:
        config_path = Path(args.path)
        if config_path.exists():
            print(f"Error: Config file already exists: {config_path}", file=sys.stderr)
            return EXIT_RUNTIME_ERROR

        config_path.write_text(get_default_config_template())
        print(f"Created configuration file: {config_path}")
        print("\nEdit this file to configure your settings.")
        print("You can also use environment variables (GEEKED_* prefix).")
        return EXIT_SUCCESS

    if args.show:
        config = load_config(Path(args.path) if args.path else None)
        config_dict = config.to_dict()
        config_dict["runtime"] = config.to_runtime_config().to_dict()
        print(json.dumps(config_dict, indent=2))
        return EXIT_SUCCESS

    # Default: show help
    print("Usage: geeked config [--init|--show]")
    print("  --init  Create a template configuration file")
    print("  --show  Show current configuration")
    return EXIT_SUCCESS


def solvers_cmd(args: argparse.Namespace) -> int:
    """Handle solvers command."""
    from solvers import get_registry

    entries = get_registry().list_solvers()

    if args.json:
        data = [
            {
                "name": e.name,
                "risk_type": e.risk_type.value,
                "capabilities": sorted(c.value for c in e.capabilities),
                "priority": e.priority,
            }
            for e in entries
        ]
        print(json.dumps(data, indent=2))
        return EXIT_SUCCESS

    if not entries:
        print("No solvers registered")
        return EXIT_SUCCESS

    for e in sorted(entries, key=lambda e: e.risk_type.value):
        caps = ", ".join(sorted(c.value for c in e.capabilities))
        print(f"  - {e.risk_type.value}: {e.name} [priority={e.priority}]")
        print(f"    capabilities: {caps}")
    if not any(e.risk_type is RiskType.ICON for e in entries):
        print("  - icon: needs --icon-classifier")
    return EXIT_SUCCESS


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0=success, 1=error, 2=verification failed)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_RUNTIME_ERROR

    # Load configuration
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    # Setup logging
    log_level = args.log_level or config.log_level
    setup_logging(level=log_level, log_file=config.log_file)

    # Attach config to args for commands to use
    args.cli_config = config

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except Exception as e:
        if getattr(args, "debug", False):
            traceback.print_exc()
        else:
            print(f"Error: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":
    sys.exit(main())
