"""
ROLE: Command-line runner: replay detector batches through the tracker.

INPUTS:
  - file: replay.path / --input JSONL of DetectionBatch
OUTPUTS:
  - Topic: log.events  Type: LogEvent
  - artifacts/<run_id>/traces/tracks.jsonl

CONFIG KEYS:
  - runtime.run_id: run directory name
  - replay.deterministic: process on the main thread instead of through the bus
  - bus.max_queue_depth: per-subscriber queue depth
  - logging.level: console level

PERF / TIMING:
  - start sinks before producers; stop everything on replay end or Ctrl-C

FAILURE MODES:
  - invalid config -> log validation_failed -> exit 2
  - thread crash -> write crash.json -> log thread_crash -> exit 1

LOG EVENTS:
  - module=core.config, event=validation_failed, payload keys=path, error
  - module=main.run, event=started, payload keys=mode, input
  - module=main.run, event=finished, payload keys=batches, tracks_path
  - module=main.run, event=thread_crash, payload keys=thread, type, message
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
import time
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

from barcodetrack.bench.replay.player import replay_deterministic, start_replay_player
from barcodetrack.bench.replay.recorder import TrackRecorder, start_track_recorder, traces_path
from barcodetrack.core.artifacts import create_run_dir, write_run_metadata
from barcodetrack.core.bus import Bus
from barcodetrack.core.clock import now_ns
from barcodetrack.core.config import load_config
from barcodetrack.core.log_sink import start_log_sink
from barcodetrack.core.logging import LogEmitter
from barcodetrack.core.perf_monitor import start_perf_monitor
from barcodetrack.tracking.session import TrackingSession
from barcodetrack.tracking.stage import start_barcode_tracking


def _ensure_artifacts(config: Dict[str, Any]) -> Path:
    runtime = config.setdefault("runtime", {})
    artifacts_cfg = runtime.setdefault("artifacts", {})
    base_dir = str(artifacts_cfg.get("dir", "artifacts"))
    retention = artifacts_cfg.get("retention", {})
    if not isinstance(retention, dict):
        retention = {}
    run_dir = create_run_dir(base_dir, run_id=str(runtime.get("run_id", "") or ""), max_runs=int(retention.get("max_runs", 10)))
    runtime["run_id"] = run_dir.name
    artifacts_cfg["dir_run"] = str(run_dir)
    write_run_metadata(run_dir, config)
    return run_dir


def _install_crash_handler(run_dir: Path, logger: LogEmitter, stop_event: threading.Event) -> threading.Event:
    crash_event = threading.Event()

    def _thread_excepthook(args: threading.ExceptHookArgs) -> None:
        name = getattr(args.thread, "name", "<unknown>")
        payload = {
            "t_ns": now_ns(),
            "thread": name,
            "type": getattr(args.exc_type, "__name__", str(args.exc_type)),
            "message": str(args.exc_value),
            "traceback": traceback.format_exception(args.exc_type, args.exc_value, args.exc_traceback),
        }
        try:
            with open(run_dir / "crash.json", "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
        except OSError as exc:
            print(f"Failed to write crash report: {exc}", file=sys.stderr)
        logger.emit("error", "main.run", "thread_crash", {k: payload[k] for k in ("thread", "type", "message")})
        crash_event.set()
        stop_event.set()

    threading.excepthook = _thread_excepthook
    return crash_event


def run_deterministic(config: Dict[str, Any], input_path: str, logger: LogEmitter) -> int:
    """Replay `input_path` on this thread; returns the number of batches processed."""
    session = TrackingSession.from_config(config, logger=logger)
    out_path = traces_path(config)
    recorder: Optional[TrackRecorder] = TrackRecorder(out_path) if out_path is not None and config.get("trace", {}).get("enabled", True) else None
    count = 0
    try:
        for msg in replay_deterministic(input_path, session, logger):
            count += 1
            if recorder is not None:
                recorder.write(msg)
    finally:
        if recorder is not None:
            recorder.close()
    return count


def run_threaded(config: Dict[str, Any], bus: Bus, logger: LogEmitter, stop_event: threading.Event, crash_event: threading.Event) -> None:
    """Replay through the bus: player -> tracking stage -> recorder/perf."""
    done_event = threading.Event()
    threads: List[threading.Thread] = []
    for starter in (start_track_recorder, start_perf_monitor):
        thread = starter(bus, config, logger, stop_event)
        if thread is not None:
            threads.append(thread)
    threads.append(start_barcode_tracking(bus, config, logger, stop_event))
    player = start_replay_player(bus, config, logger, stop_event, done_event)
    if player is None:
        done_event.set()
    try:
        while not done_event.is_set() and not crash_event.is_set():
            time.sleep(0.1)
        # Let the stage drain what the player published last.
        time.sleep(0.25)
    except KeyboardInterrupt:
        logger.emit("info", "main.run", "shutdown", {})
    finally:
        stop_event.set()
        for thread in threads:
            thread.join(timeout=1.0)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Barcode tracking replay runner")
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument("--input", default=None, help="DetectionBatch JSONL (overrides replay.path)")
    parser.add_argument("--run-id", default=None, help="Run directory name (overrides runtime.run_id)")
    parser.add_argument("--threaded", action="store_true", help="Replay through the bus instead of deterministically")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ValueError as exc:
        LogEmitter(None).emit("error", "core.config", "validation_failed", {"path": args.config, "error": str(exc)})
        raise SystemExit(2)
    if args.input:
        config["replay"]["path"] = args.input
    if args.run_id:
        config["runtime"]["run_id"] = args.run_id
    if args.threaded:
        config["replay"]["deterministic"] = False
    input_path = str(config["replay"].get("path", "") or "")
    if not input_path:
        parser.error("no input: pass --input or set replay.path")

    run_dir = _ensure_artifacts(config)
    bus = Bus(max_queue_depth=int(config.get("bus", {}).get("max_queue_depth", 8)))
    logger = LogEmitter(bus, min_level=config.get("logging", {}).get("level", "info"), run_id=config["runtime"]["run_id"])
    stop_event = threading.Event()
    crash_event = _install_crash_handler(run_dir, logger, stop_event)
    log_thread = start_log_sink(bus, config, logger, stop_event)

    deterministic = bool(config["replay"].get("deterministic", True))
    logger.emit("info", "main.run", "started", {"mode": "deterministic" if deterministic else "threaded", "input": input_path})
    batches: Optional[int] = None
    try:
        if deterministic:
            batches = run_deterministic(config, input_path, logger)
        else:
            run_threaded(config, bus, logger, stop_event, crash_event)
    except OSError as exc:
        logger.emit("error", "bench.player", "replay_failed", {"path": input_path, "error": str(exc)})
        crash_event.set()
    logger.emit("info", "main.run", "finished", {"batches": batches, "tracks_path": str(traces_path(config))})

    stop_event.set()
    if log_thread is not None:
        log_thread.join(timeout=1.0)
    if crash_event.is_set():
        raise SystemExit(1)


if __name__ == "__main__":
    main()
