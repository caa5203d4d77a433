"""
Gobang Solver

The board is an n x n grid of piece ids (0 = empty). Exactly one line
(row, column or diagonal of length n) holds n-1 copies of one piece and a
single empty cell. The answer moves a matching piece from elsewhere on
the board into that gap.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterator, Optional

from core.schemas.challenge import Challenge, RiskType
from core.schemas.errors import CaptchaFailed

from .base import AnswerPayload, BaseSolver, SolverCapability, SolverContext


logger = logging.getLogger(__name__)

Cell = tuple[int, int]


def iter_lines(n: int) -> Iterator[list[Cell]]:
    """Rows, columns, then main and anti diagonals, as cell coordinates."""
    for r in range(n):
        yield [(r, c) for c in range(n)]
    for c in range(n):
        yield [(r, c) for r in range(n)]

    for start_row in range(n):
        yield [(start_row + i, i) for i in range(n - start_row)]
    for start_col in range(1, n):
        yield [(i, start_col + i) for i in range(n - start_col)]

    for start_row in range(n):
        yield [(start_row - i, i) for i in range(start_row + 1)]
    for start_col in range(1, n):
        yield [(n - 1 - i, start_col + i) for i in range(n - start_col)]


def _normalise_board(ques: Any) -> list[list[int]]:
    if not isinstance(ques, list) or not ques:
        raise CaptchaFailed("Gobang board is missing or empty")
    board = []
    for row in ques:
        if not isinstance(row, list):
            raise CaptchaFailed("Gobang board rows must be lists")
        board.append([int(v) for v in row])
    n = len(board)
    if any(len(row) != n for row in board):
        raise CaptchaFailed(f"Gobang board is not square ({n} rows)")
    return board


def find_move(board: list[list[int]]) -> Optional[tuple[Cell, Cell]]:
    """
    Return ``(remove, fill)`` or None when no line can be completed.

    ``fill`` is the first empty cell of the first qualifying line;
    ``remove`` is the first row-major cell holding the same piece that is
    not on that line.
    """
    n = len(board)
    for line in iter_lines(n):
        if len(line) < n:
            continue

        values = [board[r][c] for r, c in line]
        counts = Counter(values)
        if counts.get(0, 0) == n - 1:
            continue

        piece = next(
            (v for v, count in counts.items() if v != 0 and count == n - 1),
            None,
        )
        if piece is None or 0 not in values:
            continue

        fill = line[values.index(0)]
        on_line = set(line)
        for r in range(n):
            for c in range(n):
                if board[r][c] == piece and (r, c) not in on_line:
                    return (r, c), fill
    return None


class GobangSolver(BaseSolver):
    """Answers ``gobang`` challenges from the ``ques`` board."""

    _risk_type = RiskType.GOBANG
    _name = "GobangSolver"
    _capabilities = {SolverCapability.DETERMINISTIC}

    async def produce_answer(self, challenge: Challenge, ctx: SolverContext) -> AnswerPayload:
        board = _normalise_board(self.require_field(challenge, "ques"))
        move = find_move(board)
        if move is None:
            raise CaptchaFailed(
                "Could not solve gobang puzzle",
                details={"lot_number": challenge.lot_number, "size": len(board)},
            )

        (remove_r, remove_c), (fill_r, fill_c) = move
        logger.debug(f"Gobang move: ({remove_r},{remove_c}) -> ({fill_r},{fill_c})")
        return AnswerPayload(
            fields={"userresponse": [[remove_r, remove_c], [fill_r, fill_c]]},
        )
