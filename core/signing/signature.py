"""
Signature Builder

Assembles the plaintext ``w`` document for one round. The document binds
the round to its lot number and proof of work, and carries the version
specific magic values extracted from the service script.

The document is rebuilt for every round; nothing here is cached between
rounds.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from core.crypto.pow import PowSolution
from core.schemas.challenge import Challenge
from core.schemas.constants import ProtocolConstants

from .lot_parser import get_lot_parser


logger = logging.getLogger(__name__)

# Compact separators, sorted keys: the service's widget emits this form.
DOCUMENT_SEPARATORS: tuple[str, str] = (",", ":")


@dataclass(frozen=True)
class RoundState:
    """Per-round inputs to the signature document."""
    captcha_id: str
    round: int
    challenge: Challenge
    pow: PowSolution
    answer: dict[str, Any] = field(default_factory=dict)


class SignatureBuilder:
    """
    Usage:
        builder = SignatureBuilder()
        document = builder.build(round_state, constants)
    """

    def compose(self, state: RoundState, constants: ProtocolConstants) -> dict[str, Any]:
        """Build the document as a dictionary (later keys win)."""
        envelope = constants.envelope
        document: dict[str, Any] = envelope.as_document()
        document.update(
            {
                "device_id": constants.device_id,
                "lot_number": state.challenge.lot_number,
                "pow_msg": state.pow.pow_msg,
                "pow_sign": state.pow.pow_sign,
                "em": dict(envelope.em),
                "gee_guard": dict(envelope.gee_guard),
            }
        )
        document.update(constants.abo)

        parser = get_lot_parser(constants.mapping)
        document.update(parser.get_dict(state.challenge.lot_number))

        document.update(state.answer)
        return document

    def build(self, state: RoundState, constants: ProtocolConstants) -> str:
        document = self.compose(state, constants)
        logger.debug(
            f"Built signature document for round {state.round} "
            f"(lot={state.challenge.lot_number}, fields={len(document)})"
        )
        return json.dumps(
            document,
            sort_keys=True,
            separators=DOCUMENT_SEPARATORS,
            ensure_ascii=False,
        )
