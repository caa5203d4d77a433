"""
Icon Solver

The challenge shows a canvas (``imgs``) with several icons and asks for
them in the order given by ``ques``, a list of question image URLs whose
file names encode a direction. Icons are located with Otsu thresholding
and connected components; each crop is labelled with a direction by a
caller-supplied IconClassifier.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

import cv2
import numpy as np

from core.schemas.challenge import Challenge, RiskType
from core.schemas.errors import CaptchaFailed

from .base import AnswerPayload, BaseSolver, SolverCapability, SolverContext
from .slide import decode_gray


logger = logging.getLogger(__name__)


ICON_MAPPING: dict[str, str] = {
    "8da090c135ff029f3b5e19f4c44f73c8.png": "u",
    "cb0eaa639b2117a69a81af3d8c1496a1.png": "d",
    "315ce8665e781dabcd1eb09d3e604803.png": "l",
    "38bd9dda695098c7dfad74c921923a7d.png": "lu",
    "502e51dbabf411beba2dcd55fd38ebbd.png": "ld",
    "2b2387f566f6a03ed594d4d7cfda471f.png": "r",
    "78dc29045d587ad054c7353732df53c5.png": "ru",
    "23ef93e6b0e0df0e15b66667c99a5fb4.png": "rd",
}

DIRECTIONS = frozenset(ICON_MAPPING.values())

MIN_ICON_DIM = 20
MIN_ASPECT = 0.3
# Canvas pixels to answer units.
X_SCALE = 33.0 / 100.0
Y_SCALE = 49.0 / 100.0


@runtime_checkable
class IconClassifier(Protocol):
    """Labels a grayscale icon crop with a direction (``u``, ``rd``, ...)."""

    def __call__(self, crop: np.ndarray) -> Optional[str]:
        ...


@dataclass(frozen=True)
class BoundingBox:
    x1: int
    y1: int
    x2: int
    y2: int

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    def center(self) -> tuple[float, float]:
        return self.x1 + self.width / 2.0, self.y1 + self.height / 2.0


def direction_for(url: str) -> Optional[str]:
    """Direction encoded by a question image URL, or None if unknown."""
    return ICON_MAPPING.get(url.rsplit("/", 1)[-1])


def detect_icons(gray: np.ndarray) -> list[BoundingBox]:
    """Candidate icon boxes on a grayscale canvas."""
    height, width = gray.shape[:2]
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV | cv2.THRESH_OTSU)
    count, _, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)

    min_area = width * height // 400
    max_area = width * height // 4
    max_dim = min(width, height) // 2

    boxes = []
    for label in range(1, count):
        x = int(stats[label, cv2.CC_STAT_LEFT])
        y = int(stats[label, cv2.CC_STAT_TOP])
        w = int(stats[label, cv2.CC_STAT_WIDTH])
        h = int(stats[label, cv2.CC_STAT_HEIGHT])
        if not (min_area <= w * h <= max_area):
            continue
        if not (MIN_ICON_DIM <= w <= max_dim and MIN_ICON_DIM <= h <= max_dim):
            continue
        if w / h <= MIN_ASPECT or h / w <= MIN_ASPECT:
            continue
        boxes.append(BoundingBox(x, y, x + w, y + h))
    return boxes


def _scaled(cx: float, cy: float) -> list[float]:
    return [cx * X_SCALE, cy * Y_SCALE]


def match_positions(
    required: list[Optional[str]],
    detected: list[tuple[BoundingBox, str]],
    rng: Any,
) -> list[list[float]]:
    """
    Assign one click position per question.

    Exact direction matches first; questions left over take a random
    unused icon, then a fixed fallback slot.
    """
    results: list[Optional[list[float]]] = [None] * len(required)
    used = [False] * len(detected)

    for q_idx, direction in enumerate(required):
        if direction is None:
            continue
        for i_idx, (bbox, detected_dir) in enumerate(detected):
            if not used[i_idx] and detected_dir == direction:
                results[q_idx] = _scaled(*bbox.center())
                used[i_idx] = True
                break

    unused = [_scaled(*bbox.center()) for i, (bbox, _) in enumerate(detected) if not used[i]]
    for q_idx in range(len(results)):
        if results[q_idx] is None and unused:
            results[q_idx] = unused.pop(rng.randrange(len(unused)))

    return [
        pos if pos is not None else _scaled(50.0 + idx * 80.0, 100.0)
        for idx, pos in enumerate(results)
    ]


class IconSolver(BaseSolver):
    """Answers ``icon`` challenges. Needs an IconClassifier."""

    _risk_type = RiskType.ICON
    _name = "IconSolver"
    _capabilities = {SolverCapability.VISION, SolverCapability.NETWORK, SolverCapability.MODEL}

    def __init__(self, classifier: IconClassifier, *, name: Optional[str] = None) -> None:
        super().__init__(name=name)
        self.classifier = classifier

    def classify(self, gray: np.ndarray) -> list[tuple[BoundingBox, str]]:
        boxes = detect_icons(gray)
        logger.debug(f"Detected {len(boxes)} potential icons")

        labelled = []
        for bbox in boxes:
            crop = gray[bbox.y1:bbox.y2, bbox.x1:bbox.x2]
            direction = self.classifier(crop)
            if direction in DIRECTIONS:
                labelled.append((bbox, direction))
        logger.debug(f"Classified {len(labelled)} icons")
        return labelled

    async def produce_answer(self, challenge: Challenge, ctx: SolverContext) -> AnswerPayload:
        imgs_path = self.require_field(challenge, "imgs")
        ques = self.require_field(challenge, "ques")
        if not isinstance(ques, list) or not all(isinstance(q, str) for q in ques):
            raise CaptchaFailed(
                "Icon questions must be a list of image URLs",
                details={"lot_number": challenge.lot_number},
            )

        gray = decode_gray(await ctx.fetch_image(imgs_path), "icon canvas")
        detected = await asyncio.to_thread(self.classify, gray)

        required = [direction_for(q) for q in ques]
        positions = match_positions(required, detected, ctx.rng)

        return AnswerPayload(
            fields={
                "passtime": ctx.rng.randint(600, 1199),
                "userresponse": positions,
            },
            metadata={"required": required, "detected": len(detected)},
        )
