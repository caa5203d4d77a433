"""
Solvers Package

One solver per risk type, selected through the SolverRegistry.
"""

from .ai import AiSolver
from .base import AnswerPayload, BaseSolver, Solver, SolverCapability, SolverContext
from .gobang import GobangSolver, find_move
from .icon import ICON_MAPPING, IconClassifier, IconSolver
from .registry import (
    SolverEntry,
    SolverRegistry,
    create_default_registry,
    get_registry,
    register_solver,
)
from .slide import SlideSolver, find_offset

__all__ = [
    "AiSolver",
    "AnswerPayload",
    "BaseSolver",
    "Solver",
    "SolverCapability",
    "SolverContext",
    "GobangSolver",
    "find_move",
    "ICON_MAPPING",
    "IconClassifier",
    "IconSolver",
    "SolverEntry",
    "SolverRegistry",
    "create_default_registry",
    "get_registry",
    "register_solver",
    "SlideSolver",
    "find_offset",
]
