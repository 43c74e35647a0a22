"""barcodetrack.core.log_sink

ROLE: Persist structured LogEvent messages to disk as JSONL.

INPUTS:
  - Topic: log.events  Type: LogEvent
OUTPUTS:
  - artifacts/<run_id>/logs/events.jsonl (rotated to events.NNN.jsonl)

CONFIG KEYS:
  - logging.file.enabled: enable file logging
  - logging.file.flush_interval_ms: flush interval
  - logging.file.rotate_mb: rotation size, 0 disables
  - runtime.artifacts.dir_run: run directory path
"""

from __future__ import annotations

import json
import queue
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from barcodetrack.core.bus import LOG_TOPIC


def start_log_sink(
    bus: Any,
    config: Dict[str, Any],
    logger: Any,
    stop_event: threading.Event,
) -> Optional[threading.Thread]:
    file_cfg = config.get("logging", {}).get("file", {})
    if not isinstance(file_cfg, dict) or not bool(file_cfg.get("enabled", False)):
        return None
    run_dir = config.get("runtime", {}).get("artifacts", {}).get("dir_run")
    if not run_dir:
        return None

    flush_s = float(file_cfg.get("flush_interval_ms", 200.0)) / 1000.0
    rotate_bytes = int(float(file_cfg.get("rotate_mb", 0.0)) * 1024 * 1024)
    logs_dir = Path(str(run_dir)) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / "events.jsonl"
    q = bus.subscribe(LOG_TOPIC)

    def _drain(fh) -> None:
        try:
            while True:
                fh.write(json.dumps(q.get_nowait(), sort_keys=True, default=str) + "\n")
        except queue.Empty:
            return

    def _run() -> None:
        fh = open(path, "a", encoding="utf-8")
        rotated = 0
        next_flush = time.time() + flush_s
        try:
            while not stop_event.is_set():
                try:
                    event = q.get(timeout=0.1)
                except queue.Empty:
                    event = None
                if event is not None:
                    fh.write(json.dumps(event, sort_keys=True, default=str) + "\n")
                if time.time() < next_flush:
                    continue
                fh.flush()
                next_flush = time.time() + flush_s
                if rotate_bytes > 0 and fh.tell() >= rotate_bytes:
                    fh.close()
                    rotated += 1
                    path.rename(logs_dir / f"events.{rotated:03d}.jsonl")
                    fh = open(path, "a", encoding="utf-8")
            _drain(fh)
        except Exception as exc:  # noqa: BLE001
            logger.emit("warning", "core.log_sink", "log_write_failed", {"path": str(path), "error": str(exc)})
        finally:
            if not fh.closed:
                fh.flush()
                fh.close()

    thread = threading.Thread(target=_run, name="log-sink", daemon=True)
    thread.start()
    return thread
