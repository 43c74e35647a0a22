import json
import os
import tempfile
import threading
import time
import unittest
from pathlib import Path

from barcodetrack.core.artifacts import apply_retention, create_run_dir, write_run_metadata
from barcodetrack.core.bus import LOG_TOPIC, Bus
from barcodetrack.core.clock import elapsed_ms, now_ns
from barcodetrack.core.log_sink import start_log_sink
from barcodetrack.core.logging import LogEmitter
from barcodetrack.core.perf_monitor import LatencyStats


class BusTests(unittest.TestCase):
    def test_drop_oldest_on_overflow(self) -> None:
        drops = []
        bus = Bus(max_queue_depth=2, on_drop=lambda topic, depth: drops.append((topic, depth)))
        q = bus.subscribe("t")
        for idx in range(4):
            bus.publish("t", idx)
        self.assertEqual([q.get_nowait(), q.get_nowait()], [2, 3])
        self.assertEqual(drops, [("t", 2), ("t", 2)])
        self.assertEqual(bus.drop_counts(), {"t": 2})

    def test_publish_without_subscribers_is_noop(self) -> None:
        bus = Bus()
        bus.publish("nobody", {"x": 1})
        self.assertEqual(bus.drop_counts(), {})


class ClockTests(unittest.TestCase):
    def test_monotonic(self) -> None:
        stamps = [now_ns() for _ in range(100)]
        self.assertEqual(stamps, sorted(stamps))
        self.assertGreaterEqual(elapsed_ms(stamps[0]), 0.0)
        self.assertEqual(elapsed_ms(1_000_000, 3_000_000), 2.0)


class LoggingTests(unittest.TestCase):
    def test_emit_publishes_structured_record(self) -> None:
        bus = Bus()
        q = bus.subscribe(LOG_TOPIC)
        logger = LogEmitter(bus, min_level="error", run_id="r1")
        logger.emit("debug", "tracking.session", "detection_skipped", {"reason": "missing_value"})
        record = q.get_nowait()
        self.assertEqual(record["level"], "debug")
        self.assertEqual(record["run_id"], "r1")
        self.assertEqual(record["context"]["module"], "tracking.session")
        self.assertEqual(record["context"]["details"], {"reason": "missing_value"})
        self.assertFalse(logger.enabled_for("warning"))
        self.assertTrue(logger.enabled_for("error"))


class ArtifactsAndLogSinkTests(unittest.TestCase):
    def test_retention_keeps_last_n(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            for idx in range(12):
                p = base / f"run{idx:02d}"
                p.mkdir(parents=True)
                ts = time.time() - (12 - idx) * 10
                os.utime(p, (ts, ts))
            apply_retention(base, max_runs=10, keep_dir=base / "run11")
            remaining = sorted(p.name for p in base.iterdir() if p.is_dir())
            self.assertIn("run11", remaining)
            self.assertNotIn("run00", remaining)
            self.assertEqual(len(remaining), 10)

    def test_run_dir_unique_and_metadata(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            first = create_run_dir(td, run_id="demo", max_runs=10)
            second = create_run_dir(td, run_id="demo", max_runs=10)
            self.assertEqual(first.name, "demo")
            self.assertEqual(second.name, "demo_02")
            self.assertTrue((first / "traces").is_dir())
            write_run_metadata(second, {"tracking": {"close_threshold": 30.0}})
            meta = json.loads((second / "run_meta.json").read_text(encoding="utf-8"))
            self.assertEqual(meta["config"]["tracking"]["close_threshold"], 30.0)
            self.assertTrue((second / "config_effective.yaml").exists())
            self.assertEqual((Path(td) / "LATEST").read_text(encoding="utf-8"), "demo_02")

    def test_log_sink_writes_jsonl(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            run_dir = create_run_dir(td, run_id="test", max_runs=10)
            config = {
                "runtime": {"artifacts": {"dir_run": str(run_dir)}},
                "logging": {"file": {"enabled": True, "flush_interval_ms": 10, "rotate_mb": 0}},
            }
            bus = Bus(max_queue_depth=8)
            logger = LogEmitter(bus, min_level="error", run_id="test")
            stop = threading.Event()
            thread = start_log_sink(bus, config, logger, stop)
            self.assertIsNotNone(thread)
            logger.emit("info", "test", "hello", {"a": 1})
            time.sleep(0.05)
            stop.set()
            thread.join(timeout=1.0)
            lines = (run_dir / "logs" / "events.jsonl").read_text(encoding="utf-8").strip().splitlines()
            self.assertGreaterEqual(len(lines), 1)
            self.assertEqual(json.loads(lines[-1])["context"]["event"], "hello")

    def test_log_sink_disabled(self) -> None:
        config = {"logging": {"file": {"enabled": False}}}
        self.assertIsNone(start_log_sink(Bus(), config, LogEmitter(None), threading.Event()))


class LatencyStatsTests(unittest.TestCase):
    def test_counts_over_budget(self) -> None:
        stats = LatencyStats(budget_ms=5.0)
        stats.add({"latency_ms": 1.0, "tracks": [{}]})
        stats.add({"latency_ms": 9.0, "tracks": [{}, {}]})
        snap = stats.snapshot()
        self.assertEqual(snap["frames"], 2)
        self.assertEqual(snap["over_budget"], 1)
        self.assertEqual(snap["tracks"], 2)
        self.assertEqual(snap["max_latency_ms"], 9.0)
        self.assertEqual(snap["mean_latency_ms"], 5.0)


if __name__ == "__main__":
    unittest.main()
