"""
Session State

Holds one solve attempt as it moves through the verification state
machine:

    INIT -> CONSTANTS_READY -> CHALLENGE_REQUESTED -> ANSWER_PRODUCED
         -> PAYLOAD_SEALED -> SUBMITTED -> {CONTINUE, SUCCESS, FAIL}

CONTINUE leads back to CHALLENGE_REQUESTED with the next round number.
A Session belongs to exactly one orchestrator run and is never shared.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from core.crypto.engine import SealedPayload
from core.schemas.challenge import Challenge, Classification, GeekedResult, RiskType, VerifyResponse


class OrchestratorState(str, Enum):
    """States of the verification state machine."""
    INIT = "init"
    CONSTANTS_READY = "constants_ready"
    CHALLENGE_REQUESTED = "challenge_requested"
    ANSWER_PRODUCED = "answer_produced"
    PAYLOAD_SEALED = "payload_sealed"
    SUBMITTED = "submitted"
    CONTINUE = "continue"
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def is_terminal(self) -> bool:
        return self in (OrchestratorState.SUCCESS, OrchestratorState.FAIL)


@dataclass(frozen=True)
class ContinuationToken:
    """
    Values a Continue response carries into the next round's load request.

    Fields the service leaves out keep the previous challenge's value.
    """
    lot_number: str
    payload: str
    process_token: str
    payload_protocol: str
    pt: str

    @classmethod
    def from_response(cls, response: VerifyResponse, previous: Challenge) -> "ContinuationToken":
        return cls(
            lot_number=response.lot_number or previous.lot_number,
            payload=response.payload or previous.payload,
            process_token=response.process_token or previous.process_token,
            payload_protocol=response.payload_protocol or previous.payload_protocol,
            pt=previous.pt,
        )

    def as_params(self) -> dict[str, str]:
        return {
            "lot_number": self.lot_number,
            "payload": self.payload,
            "process_token": self.process_token,
            "payload_protocol": self.payload_protocol,
            "pt": self.pt,
        }


@dataclass
class RoundRecord:
    """One load/solve/seal/verify cycle."""
    round: int
    challenge: Challenge
    sealed: SealedPayload
    response: VerifyResponse
    classification: Classification
    continuation: Optional[ContinuationToken] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "round": self.round,
            "lot_number": self.challenge.lot_number,
            "classification": self.classification.value,
            "pow_iterations": self.sealed.pow.iterations,
            "result": self.response.result,
            "continued": self.continuation is not None,
        }


@dataclass
class Session:
    """
    One solve attempt.

    ``history`` is appended before every transition out of SUBMITTED, so
    it is complete even when the run ends in an error.
    """
    captcha_id: str
    risk_type: RiskType
    user_info: Optional[str] = None
    challenge: str = field(default_factory=lambda: str(uuid.uuid4()))

    round: int = 1
    state: OrchestratorState = OrchestratorState.INIT
    states: list[OrchestratorState] = field(default_factory=lambda: [OrchestratorState.INIT])
    history: list[RoundRecord] = field(default_factory=list)

    result: Optional[GeekedResult] = None
    error: Optional[str] = None

    def transition(self, state: OrchestratorState) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Session already finished in state {self.state.value}")
        self.state = state
        self.states.append(state)

    def record(self, record: RoundRecord) -> None:
        self.history.append(record)

    def next_round(self) -> None:
        self.round += 1

    @property
    def finished(self) -> bool:
        return self.state.is_terminal

    @property
    def last_round(self) -> Optional[RoundRecord]:
        return self.history[-1] if self.history else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "captcha_id": self.captcha_id,
            "risk_type": self.risk_type.value,
            "rounds": len(self.history),
            "state": self.state.value,
            "states": [s.value for s in self.states],
            "history": [r.to_dict() for r in self.history],
            "error": self.error,
        }
