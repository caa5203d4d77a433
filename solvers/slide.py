"""
Slide Solver

Locates the gap for the puzzle piece by matching the edge map of the
piece against the edge map of the background.
"""

from __future__ import annotations

import asyncio
import logging

import cv2
import numpy as np

from core.schemas.challenge import Challenge, RiskType
from core.schemas.errors import CaptchaFailed

from .base import AnswerPayload, BaseSolver, SolverCapability, SolverContext


logger = logging.getLogger(__name__)

CANNY_LOW = 100
CANNY_HIGH = 200
# Distance between the piece centre and the track origin, in pixels.
TRACK_OFFSET = 41.0
# Ratio between rendered and natural background width.
RESPONSE_SCALE = 1.0059466666666665


def decode_gray(data: bytes, what: str) -> np.ndarray:
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
    if image is None:
        raise CaptchaFailed(f"Failed to load {what} image", details={"bytes": len(data)})
    return image


def find_offset(piece: np.ndarray, background: np.ndarray) -> float:
    """Horizontal slide distance for a grayscale piece/background pair."""
    if piece.shape[0] > background.shape[0] or piece.shape[1] > background.shape[1]:
        raise CaptchaFailed(
            f"Puzzle piece {piece.shape[1]}x{piece.shape[0]} larger than "
            f"background {background.shape[1]}x{background.shape[0]}"
        )
    piece_edges = cv2.Canny(piece, CANNY_LOW, CANNY_HIGH)
    bg_edges = cv2.Canny(background, CANNY_LOW, CANNY_HIGH)

    result = cv2.matchTemplate(bg_edges, piece_edges, cv2.TM_CCORR_NORMED)
    _, _, _, max_loc = cv2.minMaxLoc(result)

    max_x = max_loc[0]
    return max_x + piece.shape[1] / 2.0 - TRACK_OFFSET


class SlideSolver(BaseSolver):
    """Answers ``slide`` challenges from the ``slice`` and ``bg`` images."""

    _risk_type = RiskType.SLIDE
    _name = "SlideSolver"
    _capabilities = {SolverCapability.VISION, SolverCapability.NETWORK}

    async def produce_answer(self, challenge: Challenge, ctx: SolverContext) -> AnswerPayload:
        slice_path = self.require_field(challenge, "slice")
        bg_path = self.require_field(challenge, "bg")

        piece_bytes, bg_bytes = await asyncio.gather(
            ctx.fetch_image(slice_path),
            ctx.fetch_image(bg_path),
        )
        piece = decode_gray(piece_bytes, "puzzle piece")
        background = decode_gray(bg_bytes, "background")

        offset = await asyncio.to_thread(find_offset, piece, background)
        left = offset + ctx.rng.uniform(0.0, 0.5)
        logger.debug(f"Slide offset {offset:.2f}, submitting {left:.2f}")

        return AnswerPayload(
            fields={
                "setLeft": left,
                "passtime": ctx.rng.randint(600, 1199),
                "userresponse": left / RESPONSE_SCALE + 2,
            },
            metadata={"offset": offset},
        )
