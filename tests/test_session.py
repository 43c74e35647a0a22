import unittest

from barcodetrack.tracking.geometry import Rect, manhattan_delta
from barcodetrack.tracking.identity_registry import IdentityRegistry
from barcodetrack.tracking.session import TrackingSession


class _DummyLogger:
    def __init__(self) -> None:
        self.events = []

    def emit(self, level, module, event, payload=None):  # noqa: ANN001
        self.events.append((level, module, event, payload))


def _session(**kwargs) -> TrackingSession:
    kwargs.setdefault("registry", IdentityRegistry(seed=7))
    return TrackingSession(**kwargs)


class EndToEndTests(unittest.TestCase):
    def test_jitter_then_miss(self) -> None:
        session = _session()
        frame1 = session.update([("ABC123", [10, 10, 50, 30])])
        self.assertEqual(len(frame1), 1)
        self.assertEqual(frame1[0].key, "ABC123")
        self.assertEqual(frame1[0].rect, Rect(10, 10, 50, 30))
        color = frame1[0].color
        obj = session.tracked()[0]

        frame2 = session.update([("ABC123", [12, 11, 52, 31])])
        self.assertEqual(len(frame2), 1)
        self.assertIs(session.tracked()[0], obj)
        self.assertEqual(frame2[0].track_id, frame1[0].track_id)
        rect = frame2[0].rect
        raw1, raw2 = Rect(10, 10, 50, 30), Rect(12, 11, 52, 31)
        for got, lo, hi in zip(rect.edges(), raw1.edges(), raw2.edges()):
            self.assertGreaterEqual(got, lo)
            self.assertLessEqual(got, hi)
        self.assertLess(manhattan_delta(rect, raw1), manhattan_delta(rect, raw2))
        self.assertEqual(frame2[0].color, color)

        frame3 = session.update([])
        self.assertEqual(frame3, [])
        self.assertNotIn("ABC123", [out.key for out in frame3])
        self.assertEqual(session.tracked(), [])


class MatchingTests(unittest.TestCase):
    def test_close_detection_reuses_instance(self) -> None:
        session = _session()
        session.update([("K", [100, 100, 200, 150])])
        obj = session.tracked()[0]
        session.update([("K", [110, 105, 210, 160])])
        self.assertEqual(len(session.tracked()), 1)
        self.assertIs(session.tracked()[0], obj)
        self.assertEqual(obj.updates, 1)
        self.assertEqual(session.last_stats["matched"], 1)
        self.assertEqual(session.last_stats["created"], 0)

    def test_far_detection_creates_second_instance(self) -> None:
        session = _session()
        session.update([("K", [100, 100, 200, 150])])
        obj = session.tracked()[0]
        out = session.update([("K", [100, 100, 200, 150]), ("K", [100, 100, 240, 150])])
        self.assertEqual(len(out), 2)
        self.assertIs(session.tracked()[0], obj)
        self.assertIsNot(session.tracked()[1], obj)
        self.assertNotEqual(out[0].track_id, out[1].track_id)
        self.assertEqual(out[0].color, out[1].color)
        self.assertEqual(len(session.tracked_for("K")), 2)

    def test_far_only_detection_replaces_instance(self) -> None:
        session = _session()
        first = session.update([("K", [0, 0, 40, 20])])
        second = session.update([("K", [300, 300, 340, 320])])
        self.assertEqual(len(second), 1)
        self.assertNotEqual(second[0].track_id, first[0].track_id)
        self.assertEqual(second[0].rect, Rect(300, 300, 340, 320))
        self.assertEqual(session.last_stats["dropped"], 1)

    def test_same_rect_different_key_is_separate(self) -> None:
        session = _session()
        session.update([("A", [0, 0, 40, 20])])
        out = session.update([("B", [0, 0, 40, 20])])
        self.assertEqual([o.key for o in out], ["B"])
        self.assertEqual(session.last_stats["created"], 1)

    def test_duplicate_first_frame_values_both_tracked(self) -> None:
        session = _session()
        out = session.update([("K", [0, 0, 40, 20]), ("K", [0, 0, 40, 20])])
        self.assertEqual(len(out), 2)
        self.assertEqual(session.last_stats["created"], 2)


class DropOnMissTests(unittest.TestCase):
    def test_unmatched_object_dropped_next_frame(self) -> None:
        session = _session()
        session.update([("A", [0, 0, 40, 20]), ("B", [100, 0, 140, 20])])
        out = session.update([("B", [101, 0, 141, 20])])
        self.assertEqual([o.key for o in out], ["B"])
        self.assertEqual(session.last_stats["dropped"], 1)

    def test_no_coasting_after_miss(self) -> None:
        session = _session()
        first = session.update([("A", [0, 0, 40, 20])])
        session.update([])
        again = session.update([("A", [0, 0, 40, 20])])
        self.assertNotEqual(again[0].track_id, first[0].track_id)


class ClaimTests(unittest.TestCase):
    def test_each_previous_object_matched_at_most_once(self) -> None:
        session = _session()
        session.update([("K", [10, 10, 50, 30]), ("K", [100, 100, 140, 120])])
        obj_a, obj_b = session.tracked()
        out = session.update([("K", [11, 10, 51, 30]), ("K", [12, 11, 52, 31])])
        self.assertEqual(len(out), 2)
        self.assertIs(session.tracked()[0], obj_a)
        self.assertNotIn(obj_b, session.tracked())
        self.assertEqual(obj_a.updates, 1)
        self.assertEqual(session.last_stats["matched"], 1)
        self.assertEqual(session.last_stats["created"], 1)
        self.assertEqual(session.last_stats["dropped"], 1)

    def test_first_match_in_insertion_order(self) -> None:
        session = _session()
        session.update([("K", [10, 10, 50, 30]), ("K", [20, 10, 60, 30])])
        obj_a, obj_b = session.tracked()
        session.update([("K", [15, 10, 55, 30]), ("K", [15, 10, 55, 30])])
        self.assertEqual(session.tracked(), [obj_a, obj_b])
        self.assertEqual(obj_a.updates, 1)
        self.assertEqual(obj_b.updates, 1)


class MalformedInputTests(unittest.TestCase):
    def test_bad_entries_skipped_batch_survives(self) -> None:
        logger = _DummyLogger()
        session = _session(logger=logger)
        out = session.update(
            [
                (None, [0, 0, 10, 10]),
                ("", [0, 0, 10, 10]),
                ("NAN", [0, float("nan"), 10, 10]),
                ("FLAT", [5, 0, 5, 10]),
                ("SHAPE", [1, 2, 3]),
                "not-a-pair",
                ("OK", {"left": 0, "top": 0, "right": 10, "bottom": 10}),
            ]
        )
        self.assertEqual([o.key for o in out], ["OK"])
        self.assertEqual(session.last_stats["skipped"], 6)
        self.assertEqual(session.last_stats["detections"], 7)
        reasons = [e[3]["reason"] for e in logger.events if e[2] == "detection_skipped"]
        self.assertEqual(
            reasons,
            ["missing_value", "missing_value", "non_finite_rect", "degenerate_rect", "bad_rect", "bad_shape"],
        )
        self.assertNotIn("", session.registry)
        self.assertNotIn("NAN", session.registry)

    def test_overflowing_edge_skipped_batch_survives(self) -> None:
        session = _session()
        out = session.update(
            [
                ("A", {"left": 0, "top": 0, "right": 10**400, "bottom": 10}),
                ("C", [0, 0, 10**400, 10]),
                ("B", [0, 0, 10, 10]),
            ]
        )
        self.assertEqual([o.key for o in out], ["B"])
        self.assertEqual(session.last_stats["skipped"], 2)

    def test_inverted_rect_normalized(self) -> None:
        session = _session()
        out = session.update([("X", [50, 30, 10, 10])])
        self.assertEqual(out[0].rect, Rect(10, 10, 50, 30))


class SessionApiTests(unittest.TestCase):
    def test_hit_test_uses_interactive_region(self) -> None:
        session = _session(region_size=100)
        session.update([("ABC123", [10, 10, 50, 30]), ("FAR", [1000, 1000, 1040, 1020])])
        hit = session.hit_test(30, 20)
        self.assertIsNotNone(hit)
        self.assertEqual(hit.key, "ABC123")
        self.assertEqual(hit.region, Rect(-20, -30, 80, 70))
        self.assertEqual(session.hit_test(75, 65).key, "ABC123")
        self.assertEqual(session.hit_test(1020, 1010).key, "FAR")
        self.assertIsNone(session.hit_test(500, 500))

    def test_sessions_are_independent(self) -> None:
        registry = IdentityRegistry(seed=5)
        a = TrackingSession(registry=registry)
        b = TrackingSession(registry=registry)
        a.update([("K", [0, 0, 40, 20])])
        self.assertEqual(b.tracked(), [])
        self.assertEqual(b.frame_index, 0)
        self.assertEqual(a.frame_index, 1)

    def test_reset_drops_tracks_keeps_colors(self) -> None:
        session = _session()
        color = session.update([("K", [0, 0, 40, 20])])[0].color
        session.reset()
        self.assertEqual(session.outputs(), [])
        self.assertEqual(session.update([("K", [0, 0, 40, 20])])[0].color, color)

    def test_reset_clears_frame_stats(self) -> None:
        session = _session()
        session.update([("K", [0, 0, 40, 20]), ("L", [100, 0, 140, 20])])
        self.assertEqual(session.last_stats["created"], 2)
        session.reset()
        self.assertEqual(session.last_stats, {"detections": 0, "skipped": 0, "matched": 0, "created": 0, "dropped": 0})

    def test_from_config_with_empty_identity_section(self) -> None:
        session = TrackingSession.from_config({"tracking": {}, "identity": None})
        self.assertEqual(len(session.update([("K", [0, 0, 40, 20])])), 1)

    def test_from_config(self) -> None:
        config = {"tracking": {"close_threshold": 5.0, "region_size": 20.0}, "identity": {"color_seed": 11}}
        session = TrackingSession.from_config(config)
        session.update([("K", [0, 0, 40, 20])])
        out = session.update([("K", [6, 0, 46, 20])])
        self.assertEqual(session.last_stats["created"], 1)
        self.assertEqual(out[0].region.width, 20)
        other = TrackingSession.from_config(config)
        self.assertEqual(other.update([("K", [0, 0, 40, 20])])[0].color, out[0].color)

    def test_output_to_dict(self) -> None:
        session = _session()
        out = session.update([("K", [0, 0, 40, 20])])[0]
        data = out.to_dict()
        self.assertEqual(data["value"], "K")
        self.assertEqual(data["bbox"], {"left": 0, "top": 0, "right": 40, "bottom": 20})
        self.assertEqual(len(data["color"]), 3)
        self.assertEqual(data["track_id"], out.track_id)


if __name__ == "__main__":
    unittest.main()
