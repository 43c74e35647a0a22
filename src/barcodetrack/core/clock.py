"""
ROLE: Monotonic timestamps.

INPUTS:
  - Topic: n/a  Type: n/a
OUTPUTS:
  - Topic: n/a  Type: n/a

CONFIG KEYS:
  - n/a

PERF / TIMING:
  - monotonic now_ns() for all modules

FAILURE MODES:
  - n/a

LOG EVENTS:
  - n/a

TESTS:
  - tests/test_runtime_core.py covers timestamp monotonicity

CONTRACT DETAILS:
# Clock and timestamps

- t_ns is monotonic per process.
- All modules stamp messages from the same clock.
"""

from __future__ import annotations

import time
from typing import Optional


def now_ns() -> int:
    """Monotonic nanosecond timestamp."""
    return time.monotonic_ns()


def elapsed_ms(start_ns: int, end_ns: Optional[int] = None) -> float:
    end = now_ns() if end_ns is None else end_ns
    return (end - start_ns) / 1_000_000.0
