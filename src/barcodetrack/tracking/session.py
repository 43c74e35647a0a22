"""
ROLE: Per-frame identity matching and stabilization for decoded barcodes.

INPUTS:
  - list of (value, rect) detections per analyzed frame
OUTPUTS:
  - list of TrackOutput (value, smoothed rect, color, hit region)

CONFIG KEYS:
  - tracking.close_threshold: per-edge tolerance for matching
  - tracking.region_size: hit region side length

PERF / TIMING:
  - O(detections x tracks-per-value) per frame, no I/O

FAILURE MODES:
  - malformed detection (empty value, bad/non-finite/degenerate rect) -> skipped, counted

LOG EVENTS:
  - module=tracking.session, event=detection_skipped, payload keys=frame, index, reason
  - module=tracking.session, event=tracks_dropped, payload keys=frame, values

TESTS:
  - tests/test_session.py

CONTRACT DETAILS:
# Tracking session

- A detection updates the first previous-frame object with the same value
  (insertion order) whose edges are all within tolerance and which no earlier
  detection in the same frame has claimed; otherwise it starts a new object.
- Objects not matched in a frame are dropped in that frame. No coasting.
- One session is driven by one caller at a time; it holds no locks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from barcodetrack.core.config import get_path
from barcodetrack.core.logging import NullLogger
from barcodetrack.tracking.geometry import DEFAULT_CLOSE_THRESHOLD, Rect
from barcodetrack.tracking.identity_registry import Color, IdentityRegistry, shared_registry
from barcodetrack.tracking.tracked_object import DEFAULT_REGION_SIZE, TrackedObject


Detection = Tuple[Optional[str], Any]


@dataclass(frozen=True)
class TrackOutput:
    key: str
    rect: Rect
    color: Color
    region: Rect
    track_id: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.key,
            "track_id": self.track_id,
            "bbox": self.rect.to_dict(),
            "color": list(self.color),
            "region": self.region.to_dict(),
        }


class TrackingSession:
    """Owns the previous frame's tracked set and replaces it on every update."""

    def __init__(
        self,
        close_threshold: float = DEFAULT_CLOSE_THRESHOLD,
        region_size: float = DEFAULT_REGION_SIZE,
        registry: Optional[IdentityRegistry] = None,
        logger: Optional[Any] = None,
    ) -> None:
        self._threshold = float(close_threshold)
        self._region_size = float(region_size)
        self._registry = registry if registry is not None else shared_registry()
        self._logger = logger if logger is not None else NullLogger()
        self._tracks: Dict[str, List[TrackedObject]] = {}
        self._order: List[TrackedObject] = []
        self._frame_index = 0
        self._next_id = 1
        self.last_stats: Dict[str, int] = _empty_stats()

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        registry: Optional[IdentityRegistry] = None,
        logger: Optional[Any] = None,
    ) -> "TrackingSession":
        track_cfg = config.get("tracking", {})
        if not isinstance(track_cfg, dict):
            track_cfg = {}
        if registry is None:
            seed = get_path(config, "identity.color_seed")
            registry = IdentityRegistry(seed=seed) if seed is not None else None
        return cls(
            close_threshold=float(track_cfg.get("close_threshold", DEFAULT_CLOSE_THRESHOLD)),
            region_size=float(track_cfg.get("region_size", DEFAULT_REGION_SIZE)),
            registry=registry,
            logger=logger,
        )

    @property
    def frame_index(self) -> int:
        return self._frame_index

    @property
    def registry(self) -> IdentityRegistry:
        return self._registry

    def tracked(self) -> List[TrackedObject]:
        return list(self._order)

    def tracked_for(self, key: str) -> List[TrackedObject]:
        return list(self._tracks.get(key, ()))

    def reset(self) -> None:
        self._tracks = {}
        self._order = []
        self.last_stats = _empty_stats()

    def update(self, detections: Iterable[Detection]) -> List[TrackOutput]:
        """Run one frame: match, create, drop. Returns the new tracked set."""
        self._frame_index += 1
        frame = self._frame_index
        stats = _empty_stats()
        # Unclaimed previous-frame objects per value; claiming removes from here.
        available: Dict[str, List[TrackedObject]] = {key: list(objs) for key, objs in self._tracks.items()}
        current: Dict[str, List[TrackedObject]] = {}
        order: List[TrackedObject] = []

        for index, detection in enumerate(detections):
            stats["detections"] += 1
            parsed = self._parse(detection)
            if isinstance(parsed, str):
                stats["skipped"] += 1
                self._logger.emit(
                    "debug",
                    "tracking.session",
                    "detection_skipped",
                    {"frame": frame, "index": index, "reason": parsed},
                )
                continue
            key, rect = parsed
            track = _claim_first_close(available.get(key), rect, self._threshold)
            if track is not None:
                track.update(rect, frame)
                stats["matched"] += 1
            else:
                track = TrackedObject(key, rect, self._region_size, frame_index=frame, track_id=self._next_id)
                self._next_id += 1
                stats["created"] += 1
            current.setdefault(key, []).append(track)
            order.append(track)

        dropped = [obj for objs in available.values() for obj in objs]
        stats["dropped"] = len(dropped)
        if dropped:
            self._logger.emit(
                "debug",
                "tracking.session",
                "tracks_dropped",
                {"frame": frame, "values": sorted({obj.key for obj in dropped})},
            )

        self._tracks = current
        self._order = order
        self.last_stats = stats
        return [self._output(obj) for obj in order]

    def outputs(self) -> List[TrackOutput]:
        return [self._output(obj) for obj in self._order]

    def hit_test(self, x: float, y: float) -> Optional[TrackOutput]:
        """First tracked object whose hit region contains (x, y), in detector pixels."""
        for obj in self._order:
            if obj.region.contains(x, y):
                return self._output(obj)
        return None

    def _output(self, obj: TrackedObject) -> TrackOutput:
        return TrackOutput(
            key=obj.key,
            rect=obj.current_rect(),
            color=self._registry.color_for(obj.key),
            region=obj.region,
            track_id=obj.track_id,
        )

    @staticmethod
    def _parse(detection: Any):
        """Return (key, rect) or a skip reason string."""
        try:
            key, raw_rect = detection
        except (TypeError, ValueError):
            return "bad_shape"
        if not isinstance(key, str) or not key:
            return "missing_value"
        rect = _coerce_rect(raw_rect)
        if rect is None:
            return "bad_rect"
        if not rect.is_finite():
            return "non_finite_rect"
        rect = rect.normalized()
        if rect.is_degenerate():
            return "degenerate_rect"
        return key, rect


def _claim_first_close(
    candidates: Optional[List[TrackedObject]],
    rect: Rect,
    threshold: float,
) -> Optional[TrackedObject]:
    if not candidates:
        return None
    for idx, obj in enumerate(candidates):
        if obj.is_close_to(rect, threshold):
            return candidates.pop(idx)
    return None


def _coerce_rect(raw: Any) -> Optional[Rect]:
    if isinstance(raw, Rect):
        return raw
    try:
        if isinstance(raw, Mapping):
            return Rect.from_mapping(raw)
        if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)) and len(raw) == 4:
            left, top, right, bottom = (float(v) for v in raw)
            return Rect(left, top, right, bottom)
    except (KeyError, TypeError, ValueError, OverflowError):
        return None
    return None


def _empty_stats() -> Dict[str, int]:
    return {"detections": 0, "skipped": 0, "matched": 0, "created": 0, "dropped": 0}
