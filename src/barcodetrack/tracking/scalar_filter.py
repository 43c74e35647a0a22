"""
ROLE: Single-channel recursive estimator for one rectangle edge.

INPUTS:
  - n/a
OUTPUTS:
  - n/a

CONFIG KEYS:
  - n/a (noise constants are fixed)

PERF / TIMING:
  - four calls per tracked object per frame

FAILURE MODES:
  - non-finite measurement -> ValueError, state unchanged

LOG EVENTS:
  - n/a

TESTS:
  - tests/test_scalar_filter.py

CONTRACT DETAILS:
# Scalar filter

- Constant-position model, no velocity term.
- Gain shrinks with every update toward a small steady-state value, so the
  running estimate outweighs any single measurement. Favors stability over
  responsiveness.
- Edges are filtered independently; nothing couples left/top/right/bottom.
"""

from __future__ import annotations

import math


INITIAL_ERROR_COVARIANCE = 1.0
PROCESS_NOISE = 0.02
MEASUREMENT_NOISE = 2.0


class ScalarFilter:
    """1-D Kalman filter with fixed process and measurement noise."""

    __slots__ = ("_estimate", "_error_cov", "_process_noise", "_measurement_noise")

    def __init__(
        self,
        initial_value: float,
        process_noise: float = PROCESS_NOISE,
        measurement_noise: float = MEASUREMENT_NOISE,
    ) -> None:
        if not math.isfinite(initial_value):
            raise ValueError(f"initial value must be finite, got {initial_value!r}")
        if process_noise < 0 or measurement_noise <= 0:
            raise ValueError("process_noise must be >= 0 and measurement_noise > 0")
        self._estimate = float(initial_value)
        self._error_cov = INITIAL_ERROR_COVARIANCE
        self._process_noise = float(process_noise)
        self._measurement_noise = float(measurement_noise)

    @property
    def estimate(self) -> float:
        return self._estimate

    @property
    def error_covariance(self) -> float:
        return self._error_cov

    def gain(self) -> float:
        """Gain the next update would apply."""
        predicted = self._error_cov + self._process_noise
        return predicted / (predicted + self._measurement_noise)

    def predict_and_update(self, measurement: float) -> float:
        if not math.isfinite(measurement):
            raise ValueError(f"measurement must be finite, got {measurement!r}")
        self._error_cov += self._process_noise
        k = self._error_cov / (self._error_cov + self._measurement_noise)
        self._estimate += k * (measurement - self._estimate)
        self._error_cov *= 1.0 - k
        return self._estimate
