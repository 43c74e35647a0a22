"""
ROLE: Stable display color per decoded barcode value.

INPUTS:
  - n/a
OUTPUTS:
  - n/a

CONFIG KEYS:
  - identity.color_seed: seed for the color generator (null = OS entropy)

PERF / TIMING:
  - dict lookup per tracked object per frame

FAILURE MODES:
  - n/a

LOG EVENTS:
  - n/a

TESTS:
  - tests/test_identity_registry.py

CONTRACT DETAILS:
# Identity registry

- A key's color is chosen once and never changes for the registry's lifetime.
- Colors depend only on the generator state and the order keys are first
  seen, never on frame content.
- Append-only. Grows with the number of distinct values seen; no eviction.
- No collision avoidance: two keys may get similar colors.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

import numpy as np


Color = Tuple[int, int, int]


class IdentityRegistry:
    """Thread-safe key -> RGB map, filled lazily with random colors."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = np.random.default_rng(seed)
        self._colors: Dict[str, Color] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._colors)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._colors

    def color_for(self, key: str) -> Color:
        with self._lock:
            color = self._colors.get(key)
            if color is None:
                r, g, b = self._rng.integers(0, 256, size=3)
                color = (int(r), int(g), int(b))
                self._colors[key] = color
            return color

    def known_keys(self) -> List[str]:
        with self._lock:
            return list(self._colors)


_shared: Optional[IdentityRegistry] = None
_shared_lock = threading.Lock()


def shared_registry() -> IdentityRegistry:
    """Process-wide registry, created on first use."""
    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = IdentityRegistry()
        return _shared
