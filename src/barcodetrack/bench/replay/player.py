"""
ROLE: Replay recorded detector batches from JSONL.

INPUTS:
  - file: one DetectionBatch JSON object per line
OUTPUTS:
  - Topic: detector.barcodes  Type: DetectionBatch

CONFIG KEYS:
  - replay.path: JSONL file to replay
  - replay.rate_hz: publish rate for bus playback, 0 = unpaced
  - replay.loop: restart at end of file

PERF / TIMING:
  - paced by rate_hz; the deterministic path is unpaced

FAILURE MODES:
  - missing/unreadable file -> log replay_failed
  - bad JSON line -> log replay_line_skipped, continue

LOG EVENTS:
  - module=bench.player, event=replay_failed, payload keys=path, error
  - module=bench.player, event=replay_line_skipped, payload keys=path, line, error
  - module=bench.player, event=replay_done, payload keys=path, batches

TESTS:
  - tests/test_replay.py

CONTRACT DETAILS:
# Replay player

- Lines are replayed in file order; seq defaults to the 1-based line count.
- Blank lines are ignored.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, Iterator, Optional

from barcodetrack.core.bus import DETECTIONS_TOPIC
from barcodetrack.core.clock import now_ns
from barcodetrack.tracking.session import TrackingSession
from barcodetrack.tracking.stage import process_batch


def read_batches(path: str, logger: Any) -> Iterator[Dict[str, Any]]:
    """Yield DetectionBatch dicts from a JSONL file."""
    seq = 0
    with open(path, "r", encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.emit("warning", "bench.player", "replay_line_skipped", {"path": path, "line": line_no, "error": str(exc)})
                continue
            if not isinstance(msg, dict):
                logger.emit("warning", "bench.player", "replay_line_skipped", {"path": path, "line": line_no, "error": "not an object"})
                continue
            seq += 1
            msg.setdefault("seq", seq)
            msg.setdefault("t_ns", now_ns())
            yield msg


def replay_deterministic(path: str, session: TrackingSession, logger: Any) -> Iterator[Dict[str, Any]]:
    """Run every batch in `path` through `session` on the calling thread."""
    for msg in read_batches(path, logger):
        yield process_batch(session, msg)


def start_replay_player(
    bus: Any,
    config: Dict[str, Any],
    logger: Any,
    stop_event: threading.Event,
    done_event: Optional[threading.Event] = None,
) -> Optional[threading.Thread]:
    replay_cfg = config.get("replay", {})
    if not isinstance(replay_cfg, dict):
        replay_cfg = {}
    path = str(replay_cfg.get("path", "") or "")
    if not path:
        return None
    rate_hz = float(replay_cfg.get("rate_hz", 30.0))
    # 0 publishes back to back; slow subscribers then lose their oldest batches.
    period = 1.0 / rate_hz if rate_hz > 0 else 0.0
    loop = bool(replay_cfg.get("loop", False))

    def _run() -> None:
        count = 0
        try:
            while not stop_event.is_set():
                for msg in read_batches(path, logger):
                    if stop_event.is_set():
                        break
                    bus.publish(DETECTIONS_TOPIC, msg)
                    count += 1
                    if period > 0:
                        time.sleep(period)
                if not loop:
                    break
            logger.emit("info", "bench.player", "replay_done", {"path": path, "batches": count})
        except OSError as exc:
            logger.emit("error", "bench.player", "replay_failed", {"path": path, "error": str(exc)})
        finally:
            if done_event is not None:
                done_event.set()

    thread = threading.Thread(target=_run, name="replay-player", daemon=True)
    thread.start()
    return thread
