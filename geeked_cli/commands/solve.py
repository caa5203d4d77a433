"""
CLI Solve Command

Solve one captcha and print the seccode.

Usage:
    geeked solve <captcha_id> --type slide
    geeked solve <captcha_id> --type icon --icon-classifier mypkg.model:classify
"""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
import sys
from argparse import Namespace
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional

from core.schemas.errors import ErrorCodes, GeekedException

from geeked_cli.config import CLIConfig


logger = logging.getLogger(__name__)


# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_VERIFICATION_FAILED = 2

# Error codes meaning the service (or the round ceiling) rejected the solve
VERIFICATION_FAILURE_CODES = frozenset({
    ErrorCodes.CAPTCHA_FAILED,
    ErrorCodes.POW_EXHAUSTED,
    ErrorCodes.ROUND_LIMIT_EXCEEDED,
})


@dataclass
class SolveSummary:
    """Summary of a solve for CLI output."""
    captcha_id: str = ""
    risk_type: str = ""
    ok: bool = False
    lot_number: str = ""
    pass_token: str = ""
    gen_time: str = ""
    captcha_output: str = ""
    rounds: int = 0
    error: dict[str, Any] | None = None
    states: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        if d["error"] is None:
            del d["error"]
        if not d["states"]:
            del d["states"]
        return d


def load_classifier(spec: str) -> Callable[..., Optional[str]]:
    """Import ``module:attribute`` and return the callable it names."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Classifier must be given as module:callable, got {spec!r}")
    module = importlib.import_module(module_name)
    classifier = getattr(module, attr)
    if not callable(classifier):
        raise ValueError(f"{spec} is not callable")
    return classifier


async def run_solve(
    captcha_id: str,
    risk_type: str,
    config: CLIConfig,
    *,
    user_info: str | None = None,
    proxy: str | None = None,
    local_address: str | None = None,
    timeout: float | None = None,
    icon_classifier: Callable[..., Optional[str]] | None = None,
    http_transport: Any = None,
) -> SolveSummary:
    """
    Solve one captcha and summarise the outcome.

    Protocol errors are captured in the summary; anything else propagates.
    """
    from orchestrator import Geeked

    summary = SolveSummary(captcha_id=captcha_id, risk_type=risk_type)
    geeked = Geeked(
        captcha_id,
        risk_type,
        user_info=user_info,
        proxy=proxy,
        local_address=local_address,
        config=config.to_runtime_config(),
        icon_classifier=icon_classifier,
        http_transport=http_transport,
    )
    async with geeked:
        try:
            result = await geeked.solve(timeout=timeout)
        except GeekedException as e:
            summary.error = e.to_error_model().model_dump()
        else:
            summary.ok = True
            summary.lot_number = result.lot_number
            summary.pass_token = result.pass_token
            summary.gen_time = result.gen_time
            summary.captcha_output = result.captcha_output

    session = geeked.last_session
    if session is not None:
        summary.rounds = len(session.history)
        summary.states = [s.value for s in session.states]
    return summary


def print_summary_human(summary: SolveSummary) -> None:
    """Print summary in human-readable format."""
    print(f"captcha_id: {summary.captcha_id}")
    print(f"risk_type: {summary.risk_type}")
    print(f"ok: {str(summary.ok).lower()}")
    print(f"rounds: {summary.rounds}")
    if summary.ok:
        print(f"lot_number: {summary.lot_number}")
        print(f"pass_token: {summary.pass_token}")
        print(f"gen_time: {summary.gen_time}")
        print(f"captcha_output: {summary.captcha_output}")
    elif summary.error:
        print(f"error: [{summary.error['code']}] {summary.error['message']}")


def print_summary_json(summary: SolveSummary) -> None:
    """Print summary as JSON."""
    print(json.dumps(summary.to_dict(), indent=2))


def exit_code_for(summary: SolveSummary) -> int:
    if summary.ok:
        return EXIT_SUCCESS
    code = (summary.error or {}).get("code")
    if code in VERIFICATION_FAILURE_CODES:
        return EXIT_VERIFICATION_FAILED
    return EXIT_RUNTIME_ERROR


def solve_cmd(args: Namespace) -> int:
    """
    Execute the solve command.

    Returns:
        Exit code (0 solved, 1 runtime error, 2 verification failed)
    """
    config: CLIConfig = getattr(args, "cli_config", None) or CLIConfig()
    timeout = args.timeout if args.timeout is not None else config.solve_timeout
    output_json = args.json or config.default_output_format == "json"

    icon_classifier = None
    if args.icon_classifier:
        try:
            icon_classifier = load_classifier(args.icon_classifier)
            logger.debug(f"Loaded icon classifier {args.icon_classifier}")
        except (ImportError, AttributeError, ValueError) as e:
            print(f"Cannot load icon classifier: {e}", file=sys.stderr)
            return EXIT_RUNTIME_ERROR

    summary = asyncio.run(
        run_solve(
            args.captcha_id,
            args.type,
            config,
            user_info=args.user_info,
            proxy=args.proxy,
            local_address=args.local_address,
            timeout=timeout,
            icon_classifier=icon_classifier,
        )
    )

    if output_json:
        print_summary_json(summary)
    else:
        print_summary_human(summary)

    return exit_code_for(summary)
