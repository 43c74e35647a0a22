"""
ROLE: In-process pub/sub with bounded queues.

INPUTS:
  - Topic: n/a  Type: n/a
OUTPUTS:
  - Topic: n/a  Type: n/a

CONFIG KEYS:
  - bus.max_queue_depth: per-subscriber queue depth

PERF / TIMING:
  - preserve per-topic ordering
  - publish never blocks

FAILURE MODES:
  - queue full -> drop oldest -> on_drop(topic, depth)

LOG EVENTS:
  - module=core.bus, event=queue_full, payload keys=topic, depth

TESTS:
  - tests/test_runtime_core.py covers drop-oldest backpressure

CONTRACT DETAILS:
# Bus contract

- Detector batches arrive on DETECTIONS_TOPIC, tracked output leaves on TRACKS_TOPIC.
- A slow subscriber loses its oldest messages, never the newest frame.
"""

from __future__ import annotations

import queue
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional


DETECTIONS_TOPIC = "detector.barcodes"
TRACKS_TOPIC = "tracking.barcodes"
LOG_TOPIC = "log.events"
PERF_TOPIC = "runtime.perf"

DropHandler = Callable[[str, int], None]


class Bus:
    """Topic -> subscriber queues, drop-oldest on overflow."""

    def __init__(self, max_queue_depth: int = 8, on_drop: Optional[DropHandler] = None) -> None:
        self._depth = max(1, int(max_queue_depth))
        self._on_drop = on_drop
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[queue.Queue[Any]]] = defaultdict(list)
        self._drops: Dict[str, int] = defaultdict(int)

    def set_drop_handler(self, on_drop: Optional[DropHandler]) -> None:
        self._on_drop = on_drop

    def drop_counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._drops)

    def subscribe(self, topic: str) -> queue.Queue[Any]:
        """Return a fresh queue that receives every later publish on `topic`."""
        q: queue.Queue[Any] = queue.Queue(maxsize=self._depth)
        with self._lock:
            self._subscribers[topic].append(q)
        return q

    def publish(self, topic: str, msg: Any) -> None:
        with self._lock:
            targets = list(self._subscribers.get(topic, ()))
        for q in targets:
            if not _offer(q, msg):
                continue
            with self._lock:
                self._drops[topic] += 1
            if self._on_drop is not None:
                self._on_drop(topic, q.maxsize)


def _offer(q: queue.Queue[Any], msg: Any) -> bool:
    """Put `msg`, evicting the oldest entry when full. True if something was dropped."""
    try:
        q.put_nowait(msg)
        return False
    except queue.Full:
        pass
    try:
        q.get_nowait()
    except queue.Empty:
        pass
    try:
        q.put_nowait(msg)
    except queue.Full:
        pass
    return True
