"""
ROLE: Record tracked output to JSONL traces.

INPUTS:
  - Topic: tracking.barcodes  Type: TrackedBatch
OUTPUTS:
  - artifacts/<run_id>/traces/tracks.jsonl

CONFIG KEYS:
  - trace.enabled: enable recording
  - runtime.artifacts.dir_run: run directory path

PERF / TIMING:
  - flush every 0.5 s

FAILURE MODES:
  - write failure -> log record_failed

LOG EVENTS:
  - module=bench.recorder, event=started, payload keys=path
  - module=bench.recorder, event=record_failed, payload keys=error

TESTS:
  - tests/test_replay.py

CONTRACT DETAILS:
# Recorder

- Every TrackedBatch is written, in arrival order; nothing is sampled.
"""

from __future__ import annotations

import json
import queue
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from barcodetrack.core.bus import TRACKS_TOPIC


class TrackRecorder:
    """Append-only JSONL writer for TrackedBatch messages."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.count = 0
        self._fh = open(path, "a", encoding="utf-8")

    def __enter__(self) -> "TrackRecorder":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def write(self, msg: Dict[str, Any]) -> None:
        self._fh.write(json.dumps(msg, sort_keys=True) + "\n")
        self.count += 1

    def flush(self) -> None:
        self._fh.flush()

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.flush()
            self._fh.close()


def traces_path(config: Dict[str, Any]) -> Optional[Path]:
    run_dir = config.get("runtime", {}).get("artifacts", {}).get("dir_run")
    if not run_dir:
        return None
    return Path(str(run_dir)) / "traces" / "tracks.jsonl"


def start_track_recorder(
    bus: Any,
    config: Dict[str, Any],
    logger: Any,
    stop_event: threading.Event,
) -> Optional[threading.Thread]:
    trace_cfg = config.get("trace", {})
    if not isinstance(trace_cfg, dict):
        trace_cfg = {}
    if not bool(trace_cfg.get("enabled", True)):
        return None
    path = traces_path(config)
    if path is None:
        logger.emit("warning", "bench.recorder", "record_failed", {"error": "runtime.artifacts.dir_run_missing"})
        return None

    q_tracks = bus.subscribe(TRACKS_TOPIC)

    def _run() -> None:
        next_flush = time.time() + 0.5
        try:
            with TrackRecorder(path) as recorder:
                logger.emit("info", "bench.recorder", "started", {"path": str(path)})
                while not stop_event.is_set():
                    try:
                        recorder.write(q_tracks.get(timeout=0.05))
                    except queue.Empty:
                        pass
                    if time.time() >= next_flush:
                        recorder.flush()
                        next_flush = time.time() + 0.5
                while True:
                    try:
                        recorder.write(q_tracks.get_nowait())
                    except queue.Empty:
                        break
        except Exception as exc:  # noqa: BLE001
            logger.emit("error", "bench.recorder", "record_failed", {"error": str(exc)})

    thread = threading.Thread(target=_run, name="track-recorder", daemon=True)
    thread.start()
    return thread
