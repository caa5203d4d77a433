"""
Solver Base Classes

Defines the solver interface and base implementation.

Every solver:
1. Declares the risk type it handles
2. Declares its capabilities
3. Returns an AnswerPayload from produce_answer()

Solvers only see the challenge and a SolverContext; rounds, constants
and crypto stay in the orchestrator.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from core.schemas.challenge import Challenge, RiskType
from core.schemas.errors import CaptchaFailed


class SolverCapability(str, Enum):
    """
    Capabilities that a solver may have.

    Used for listing and selection.
    """
    VISION = "vision"                # Decodes and analyses images
    NETWORK = "network"              # Downloads assets through the context
    DETERMINISTIC = "deterministic"  # Same challenge, same answer
    MODEL = "model"                  # Needs a caller-supplied classifier


@dataclass
class AnswerPayload:
    """
    Type-specific answer fields merged into the signature document.
    """
    fields: dict[str, Any] = field(default_factory=dict)

    # Free-form diagnostics, never sent to the service
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "AnswerPayload":
        return cls()


@dataclass
class SolverContext:
    """
    Everything a solver may use besides the challenge itself.
    """
    fetch_image: Callable[[str], Awaitable[bytes]]
    rng: random.Random = field(default_factory=random.Random)
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Solver(Protocol):
    """
    Protocol defining the solver interface.
    """

    @property
    def risk_type(self) -> RiskType:
        """Risk type this solver answers."""
        ...

    async def produce_answer(self, challenge: Challenge, ctx: SolverContext) -> AnswerPayload:
        """Compute the answer fields for one challenge."""
        ...


class BaseSolver(ABC):
    """
    Abstract base class for solvers.

    Provides common functionality and enforces the solver contract.
    """

    # Subclasses must define these
    _risk_type: RiskType
    _name: str
    _capabilities: set[SolverCapability]

    def __init__(self, *, name: Optional[str] = None) -> None:
        self._name_override = name

    @property
    def risk_type(self) -> RiskType:
        return self._risk_type

    @property
    def name(self) -> str:
        return self._name_override or getattr(self, "_name", self.__class__.__name__)

    @property
    def capabilities(self) -> set[SolverCapability]:
        return getattr(self, "_capabilities", set())

    def has_capability(self, cap: SolverCapability) -> bool:
        return cap in self.capabilities

    def require_field(self, challenge: Challenge, name: str) -> Any:
        """Read a challenge field the solver cannot work without."""
        value = getattr(challenge, name, None)
        if value is None:
            value = challenge.extra_field(name)
        if value is None or value == "":
            raise CaptchaFailed(
                f"Challenge has no {name!r} field for {self.risk_type.value}",
                details={"lot_number": challenge.lot_number},
            )
        return value

    @abstractmethod
    async def produce_answer(self, challenge: Challenge, ctx: SolverContext) -> AnswerPayload:
        ...
