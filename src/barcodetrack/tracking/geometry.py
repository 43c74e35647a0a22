"""
ROLE: Axis-aligned rectangles and closeness predicates in detector pixel space.

INPUTS:
  - n/a
OUTPUTS:
  - n/a

CONFIG KEYS:
  - tracking.close_threshold: default per-edge tolerance (see DEFAULT_CLOSE_THRESHOLD)

PERF / TIMING:
  - pure arithmetic, called per detection per frame

FAILURE MODES:
  - n/a

LOG EVENTS:
  - n/a

TESTS:
  - tests/test_geometry.py

CONTRACT DETAILS:
# Geometry

- Distances are in detector pixels and are not normalized by rectangle size,
  so tolerances depend on the input resolution.
- round_edge is the only place a float edge becomes an integer pixel.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


DEFAULT_CLOSE_THRESHOLD = 30.0

Point = Tuple[float, float]


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    right: float
    bottom: float

    @classmethod
    def from_mapping(cls, bbox: dict) -> "Rect":
        return cls(
            left=float(bbox["left"]),
            top=float(bbox["top"]),
            right=float(bbox["right"]),
            bottom=float(bbox["bottom"]),
        )

    def edges(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def normalized(self) -> "Rect":
        """Swap inverted edges so left <= right and top <= bottom."""
        left, right = sorted((self.left, self.right))
        top, bottom = sorted((self.top, self.bottom))
        return Rect(left, top, right, bottom)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.edges())

    def is_degenerate(self) -> bool:
        return self.width == 0 or self.height == 0

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def to_dict(self) -> dict:
        return {"left": self.left, "top": self.top, "right": self.right, "bottom": self.bottom}


def round_edge(value: float) -> int:
    """Snap a filtered edge or center coordinate to an integer pixel (half to even)."""
    return int(round(value))


def center(rect: Rect) -> Point:
    return (rect.left + rect.right) / 2.0, (rect.top + rect.bottom) / 2.0


def manhattan_delta(a: Rect, b: Rect) -> float:
    return sum(abs(pa - pb) for pa, pb in zip(a.edges(), b.edges()))


def is_close(a: Rect, b: Rect, threshold: float = DEFAULT_CLOSE_THRESHOLD) -> bool:
    """True iff every edge moved by less than `threshold`.

    Stricter than a combined distance: a large move on one edge alone is enough
    to reject the pair.
    """
    return all(abs(pa - pb) < threshold for pa, pb in zip(a.edges(), b.edges()))


def interactive_region(rect: Rect, size: float) -> Rect:
    """Square hit region of side `size` centered on `rect`."""
    cx, cy = center(rect)
    cx, cy = round_edge(cx), round_edge(cy)
    half = size / 2.0
    return Rect(
        round_edge(cx - half),
        round_edge(cy - half),
        round_edge(cx + half),
        round_edge(cy + half),
    )
