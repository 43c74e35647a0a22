"""
ROLE: Structured logging to the bus + console.

INPUTS:
  - n/a
OUTPUTS:
  - Topic: log.events  Type: LogEvent

CONFIG KEYS:
  - logging.level: minimum console level (debug/info/warning/error)

PERF / TIMING:
  - emit is cheap; console printing is gated by level

FAILURE MODES:
  - unknown level string -> treated as info

LOG EVENTS:
  - n/a

TESTS:
  - tests/test_runtime_core.py

CONTRACT DETAILS:
# Logging contract

- LogEvent = t_ns, level, message, run_id, context{module, event, details}.
- Every event reaches the bus regardless of level so log_sink keeps a full record.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from barcodetrack.core.bus import LOG_TOPIC
from barcodetrack.core.clock import now_ns


LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}


class LogEmitter:
    """Emit structured LogEvents to the bus and stdout."""

    def __init__(self, bus: Optional[Any], min_level: str = "info", run_id: str = "") -> None:
        self._bus = bus
        self._min_level = LEVELS.get(str(min_level).lower(), 20)
        self._run_id = run_id

    def enabled_for(self, level: str) -> bool:
        return LEVELS.get(level, 0) >= self._min_level

    def emit(self, level: str, module: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        record = {
            "t_ns": now_ns(),
            "level": level,
            "message": event,
            "run_id": self._run_id,
            "context": {
                "module": module,
                "event": event,
                "details": payload or {},
            },
        }
        if self._bus is not None:
            self._bus.publish(LOG_TOPIC, record)
        if self.enabled_for(level):
            print(json.dumps(record, sort_keys=True, default=str))


class NullLogger:
    """Drop-in LogEmitter that discards everything."""

    def emit(self, level: str, module: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        return None
