"""
Solver Registry

Maps each risk type to the solver implementations registered for it.

Supports:
- Several implementations per risk type, highest priority wins
- Selection by name
- Registration of optional solvers (icon) only when their
  dependencies are configured
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TYPE_CHECKING

from core.schemas.challenge import RiskType
from core.schemas.errors import SolverUnavailable

from .ai import AiSolver
from .base import Solver, SolverCapability
from .gobang import GobangSolver
from .slide import SlideSolver

if TYPE_CHECKING:
    from .icon import IconClassifier


@dataclass
class SolverEntry:
    """
    Entry in the solver registry.
    """
    name: str
    risk_type: RiskType
    factory: Callable[[], Solver]
    capabilities: set[SolverCapability] = field(default_factory=set)
    priority: int = 0  # Higher = preferred
    metadata: dict[str, Any] = field(default_factory=dict)


class SolverRegistry:
    """
    Registry for solver implementations.

    Usage:
        registry = SolverRegistry()
        registry.register(
            RiskType.SLIDE,
            name="SlideSolver",
            factory=SlideSolver,
            capabilities={SolverCapability.VISION},
        )
        solver = registry.get_solver(RiskType.SLIDE)
    """

    def __init__(self) -> None:
        self._entries: dict[RiskType, list[SolverEntry]] = {}
        self._by_name: dict[str, SolverEntry] = {}

    def register(
        self,
        risk_type: RiskType,
        name: str,
        factory: Callable[[], Solver],
        *,
        capabilities: Optional[set[SolverCapability]] = None,
        priority: int = 0,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Register a solver implementation.

        Args:
            risk_type: Risk type the solver answers
            name: Unique name for this solver
            factory: Zero-argument callable creating the solver
            capabilities: Set of capabilities
            priority: Selection priority (higher = preferred)
            metadata: Additional metadata
        """
        entry = SolverEntry(
            name=name,
            risk_type=risk_type,
            factory=factory,
            capabilities=capabilities or set(),
            priority=priority,
            metadata=metadata or {},
        )

        old = self._by_name.get(name)
        if old is not None:
            self._entries[old.risk_type].remove(old)

        self._entries.setdefault(risk_type, []).append(entry)
        self._by_name[name] = entry

        # Keep sorted by priority (descending)
        self._entries[risk_type].sort(key=lambda e: e.priority, reverse=True)

    def unregister(self, name: str) -> None:
        entry = self._by_name.pop(name, None)
        if entry is not None:
            self._entries[entry.risk_type].remove(entry)

    def get_solver(self, risk_type: RiskType, *, name: Optional[str] = None) -> Solver:
        """
        Create the solver for a risk type.

        Raises:
            SolverUnavailable: If nothing is registered for the type (or
                no solver has the requested name).
        """
        if name:
            entry = self._by_name.get(name)
            if entry is None or entry.risk_type != risk_type:
                raise SolverUnavailable(
                    f"No solver named {name!r} for risk type {risk_type.value}",
                    risk_type=risk_type.value,
                )
            return entry.factory()

        candidates = self._entries.get(risk_type, [])
        if not candidates:
            raise SolverUnavailable(
                f"No solver registered for risk type {risk_type.value}",
                risk_type=risk_type.value,
            )
        return candidates[0].factory()

    def list_solvers(self, risk_type: Optional[RiskType] = None) -> list[SolverEntry]:
        if risk_type:
            return list(self._entries.get(risk_type, []))

        all_entries = []
        for entries in self._entries.values():
            all_entries.extend(entries)
        return all_entries

    def has_solver(self, risk_type: RiskType) -> bool:
        return bool(self._entries.get(risk_type))


def create_default_registry(
    icon_classifier: Optional["IconClassifier"] = None,
) -> SolverRegistry:
    """
    Registry with the built-in solvers.

    The icon solver is only registered when a classifier is supplied.
    """
    registry = SolverRegistry()
    registry.register(
        RiskType.SLIDE,
        "SlideSolver",
        SlideSolver,
        capabilities={SolverCapability.VISION, SolverCapability.NETWORK},
    )
    registry.register(
        RiskType.GOBANG,
        "GobangSolver",
        GobangSolver,
        capabilities={SolverCapability.DETERMINISTIC},
    )
    registry.register(
        RiskType.AI,
        "AiSolver",
        AiSolver,
        capabilities={SolverCapability.DETERMINISTIC},
    )
    if icon_classifier is not None:
        from .icon import IconSolver

        registry.register(
            RiskType.ICON,
            "IconSolver",
            lambda: IconSolver(icon_classifier),
            capabilities={
                SolverCapability.VISION,
                SolverCapability.NETWORK,
                SolverCapability.MODEL,
            },
        )
    return registry


# Global registry instance
_global_registry: Optional[SolverRegistry] = None


def get_registry() -> SolverRegistry:
    """Get the global solver registry (built-in solvers, no icon)."""
    global _global_registry
    if _global_registry is None:
        _global_registry = create_default_registry()
    return _global_registry


def register_solver(
    risk_type: RiskType,
    name: str,
    factory: Callable[[], Solver],
    **kwargs: Any,
) -> None:
    """
    Register a solver in the global registry.

    Convenience function for module-level registration.
    """
    get_registry().register(risk_type, name, factory, **kwargs)
