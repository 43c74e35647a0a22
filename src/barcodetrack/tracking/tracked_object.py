"""
ROLE: One physical barcode instance followed across frames.

INPUTS:
  - n/a
OUTPUTS:
  - n/a

CONFIG KEYS:
  - tracking.region_size: hit region side length

PERF / TIMING:
  - per matched detection

FAILURE MODES:
  - n/a (inputs are validated by the session)

LOG EVENTS:
  - n/a

TESTS:
  - tests/test_tracked_object.py

CONTRACT DETAILS:
# Tracked object

- Four independent ScalarFilters, one per edge.
- current_rect() and region share geometry.round_edge.
"""

from __future__ import annotations

from typing import Tuple

from barcodetrack.tracking.geometry import DEFAULT_CLOSE_THRESHOLD, Rect, interactive_region, is_close, round_edge
from barcodetrack.tracking.scalar_filter import ScalarFilter


DEFAULT_REGION_SIZE = 100.0


class TrackedObject:
    """Smoothed, stateful view of one detected barcode."""

    def __init__(
        self,
        key: str,
        initial_rect: Rect,
        region_size: float = DEFAULT_REGION_SIZE,
        frame_index: int = 0,
        track_id: int = 0,
    ) -> None:
        self.key = key
        self.track_id = track_id
        self._region_size = float(region_size)
        self._filters: Tuple[ScalarFilter, ScalarFilter, ScalarFilter, ScalarFilter] = (
            ScalarFilter(initial_rect.left),
            ScalarFilter(initial_rect.top),
            ScalarFilter(initial_rect.right),
            ScalarFilter(initial_rect.bottom),
        )
        self.first_seen_frame = frame_index
        self.last_seen_frame = frame_index
        self.updates = 0
        self.region = interactive_region(self.current_rect(), self._region_size)

    def __repr__(self) -> str:
        return f"TrackedObject(id={self.track_id}, key={self.key!r}, rect={self.current_rect()!r}, last_seen={self.last_seen_frame})"

    def estimates(self) -> Tuple[float, float, float, float]:
        """Unrounded filter estimates (left, top, right, bottom)."""
        left, top, right, bottom = (f.estimate for f in self._filters)
        return left, top, right, bottom

    def current_rect(self) -> Rect:
        left, top, right, bottom = (round_edge(v) for v in self.estimates())
        return Rect(left, top, right, bottom).normalized()

    def update(self, measured_rect: Rect, frame_index: int) -> Rect:
        for flt, measurement in zip(self._filters, measured_rect.edges()):
            flt.predict_and_update(measurement)
        self.last_seen_frame = frame_index
        self.updates += 1
        rect = self.current_rect()
        self.region = interactive_region(rect, self._region_size)
        return rect

    def is_close_to(self, other_rect: Rect, threshold: float = DEFAULT_CLOSE_THRESHOLD) -> bool:
        return is_close(self.current_rect(), other_rect, threshold)
