"""barcodetrack.core.perf_monitor

ROLE: Summarize per-frame tracking latency and persist it.

INPUTS:
  - Topic: tracking.barcodes  Type: TrackedBatch

OUTPUTS:
  - Topic: runtime.perf  Type: dict
  - artifacts/<run_id>/logs/perf.jsonl

CONFIG KEYS:
  - perf.enabled: enable perf monitor
  - perf.emit_hz: snapshot rate
  - tracking.latency_budget_ms: budget used for the over_budget counter
  - runtime.artifacts.dir_run: run directory path
"""

from __future__ import annotations

import json
import queue
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from barcodetrack.core.bus import PERF_TOPIC, TRACKS_TOPIC
from barcodetrack.core.clock import now_ns


class LatencyStats:
    """Running frame count and latency aggregates."""

    def __init__(self, budget_ms: float) -> None:
        self.budget_ms = budget_ms
        self.frames = 0
        self.over_budget = 0
        self.tracks = 0
        self.last_ms: Optional[float] = None
        self.max_ms = 0.0
        self._total_ms = 0.0

    def add(self, msg: Dict[str, Any]) -> None:
        latency = float(msg.get("latency_ms", 0.0))
        self.frames += 1
        self.tracks = len(msg.get("tracks", []))
        self.last_ms = latency
        self.max_ms = max(self.max_ms, latency)
        self._total_ms += latency
        if latency > self.budget_ms:
            self.over_budget += 1

    def snapshot(self) -> Dict[str, Any]:
        return {
            "t_ns": now_ns(),
            "frames": self.frames,
            "tracks": self.tracks,
            "over_budget": self.over_budget,
            "budget_ms": self.budget_ms,
            "last_latency_ms": self.last_ms,
            "max_latency_ms": self.max_ms,
            "mean_latency_ms": (self._total_ms / self.frames) if self.frames else None,
        }


def start_perf_monitor(
    bus: Any,
    config: Dict[str, Any],
    logger: Any,
    stop_event: threading.Event,
) -> Optional[threading.Thread]:
    perf_cfg = config.get("perf", {})
    if not isinstance(perf_cfg, dict):
        perf_cfg = {}
    if not bool(perf_cfg.get("enabled", True)):
        return None
    emit_hz = max(0.2, min(20.0, float(perf_cfg.get("emit_hz", 1.0))))
    stats = LatencyStats(float(config.get("tracking", {}).get("latency_budget_ms", 8.0)))

    path: Optional[Path] = None
    run_dir = config.get("runtime", {}).get("artifacts", {}).get("dir_run")
    if run_dir:
        logs_dir = Path(str(run_dir)) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        path = logs_dir / "perf.jsonl"

    q_tracks = bus.subscribe(TRACKS_TOPIC)

    def _run() -> None:
        fh = open(path, "a", encoding="utf-8") if path is not None else None
        period = 1.0 / emit_hz
        next_emit = time.time() + period
        try:
            while not stop_event.is_set():
                try:
                    stats.add(q_tracks.get(timeout=0.02))
                except queue.Empty:
                    pass
                if time.time() < next_emit:
                    continue
                next_emit = time.time() + period
                snapshot = stats.snapshot()
                bus.publish(PERF_TOPIC, snapshot)
                if fh is not None:
                    fh.write(json.dumps(snapshot, sort_keys=True) + "\n")
                    fh.flush()
        except Exception as exc:  # noqa: BLE001
            logger.emit("warning", "core.perf_monitor", "perf_failed", {"error": str(exc)})
        finally:
            if fh is not None:
                fh.close()

    thread = threading.Thread(target=_run, name="perf", daemon=True)
    thread.start()
    return thread
