"""
ROLE: Single consumer that feeds detector batches into one TrackingSession.

INPUTS:
  - Topic: detector.barcodes  Type: DetectionBatch
OUTPUTS:
  - Topic: tracking.barcodes  Type: TrackedBatch

CONFIG KEYS:
  - tracking.close_threshold: per-edge tolerance for matching
  - tracking.region_size: hit region side length
  - tracking.latency_budget_ms: per-frame update budget
  - identity.color_seed: color generator seed

PERF / TIMING:
  - one session update per batch, on this thread only

FAILURE MODES:
  - malformed batch -> log batch_failed, continue
  - update slower than budget -> log latency_budget_exceeded

LOG EVENTS:
  - module=tracking.stage, event=started, payload keys=threshold, region_size
  - module=tracking.stage, event=batch_failed, payload keys=seq, error
  - module=tracking.stage, event=latency_budget_exceeded, payload keys=seq, latency_ms, budget_ms

TESTS:
  - tests/test_stage.py

CONTRACT DETAILS:
# Tracking stage

- Detection may run on any number of worker threads; they all publish to
  detector.barcodes and this thread is the only one that touches the session.
- Output message keeps the input seq and t_ns so consumers can line frames up.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Dict, List, Optional, Tuple

from barcodetrack.core.bus import DETECTIONS_TOPIC, TRACKS_TOPIC
from barcodetrack.core.clock import elapsed_ms, now_ns
from barcodetrack.tracking.identity_registry import IdentityRegistry
from barcodetrack.tracking.session import TrackingSession


def detections_from_message(msg: Dict[str, Any]) -> List[Tuple[Optional[str], Any]]:
    """DetectionBatch message -> [(value, bbox)] for TrackingSession.update."""
    if not isinstance(msg, dict):
        raise ValueError(f"detection batch must be a dict, got {type(msg).__name__}")
    items = msg.get("detections", [])
    if not isinstance(items, list):
        raise ValueError("detection batch 'detections' must be a list")
    out: List[Tuple[Optional[str], Any]] = []
    for item in items:
        if not isinstance(item, dict):
            out.append((None, None))
            continue
        out.append((item.get("value"), item.get("bbox")))
    return out


def process_batch(session: TrackingSession, msg: Dict[str, Any]) -> Dict[str, Any]:
    """Run one batch through the session and build the TrackedBatch message."""
    start_ns = now_ns()
    outputs = session.update(detections_from_message(msg))
    latency_ms = elapsed_ms(start_ns)
    return {
        "t_ns": msg.get("t_ns", start_ns),
        "seq": msg.get("seq", session.frame_index),
        "frame": session.frame_index,
        "latency_ms": latency_ms,
        "stats": dict(session.last_stats),
        "tracks": [out.to_dict() for out in outputs],
    }


def start_barcode_tracking(
    bus: Any,
    config: Dict[str, Any],
    logger: Any,
    stop_event: threading.Event,
    registry: Optional[IdentityRegistry] = None,
) -> threading.Thread:
    q_detections = bus.subscribe(DETECTIONS_TOPIC)
    session = TrackingSession.from_config(config, registry=registry, logger=logger)
    track_cfg = config.get("tracking", {})
    if not isinstance(track_cfg, dict):
        track_cfg = {}
    budget_ms = float(track_cfg.get("latency_budget_ms", 8.0))

    def _run() -> None:
        logger.emit(
            "info",
            "tracking.stage",
            "started",
            {
                "threshold": float(track_cfg.get("close_threshold", 30.0)),
                "region_size": float(track_cfg.get("region_size", 100.0)),
            },
        )
        while not stop_event.is_set():
            try:
                msg = q_detections.get(timeout=0.05)
            except queue.Empty:
                continue
            try:
                out = process_batch(session, msg)
            except Exception as exc:  # noqa: BLE001
                seq = msg.get("seq") if isinstance(msg, dict) else None
                logger.emit("error", "tracking.stage", "batch_failed", {"seq": seq, "error": str(exc)})
                continue
            if out["latency_ms"] > budget_ms:
                logger.emit(
                    "warning",
                    "tracking.stage",
                    "latency_budget_exceeded",
                    {"seq": out["seq"], "latency_ms": out["latency_ms"], "budget_ms": budget_ms},
                )
            bus.publish(TRACKS_TOPIC, out)

    thread = threading.Thread(target=_run, name="barcode-track", daemon=True)
    thread.start()
    return thread
