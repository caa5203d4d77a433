"""
AI Solver

Invisible (``ai``) challenges need no user interaction; the signature
document carries no answer fields.
"""

from __future__ import annotations

from core.schemas.challenge import Challenge, RiskType

from .base import AnswerPayload, BaseSolver, SolverCapability, SolverContext


class AiSolver(BaseSolver):
    _risk_type = RiskType.AI
    _name = "AiSolver"
    _capabilities = {SolverCapability.DETERMINISTIC}

    async def produce_answer(self, challenge: Challenge, ctx: SolverContext) -> AnswerPayload:
        return AnswerPayload.empty()
