import unittest
from datetime import UTC, datetime
from pathlib import Path
from tempfile import TemporaryDirectory

from fit_overlay.aligner import AlignedSample
from fit_overlay.ass import (
    ass_time,
    format_number,
    generate_ass,
    merge_spans,
    resolve_fields,
)
from fit_overlay.series import Sample

T0 = datetime(2023, 5, 25, 15, 15, 45, tzinfo=UTC)


def aligned(**values) -> AlignedSample:
    return AlignedSample(
        time=T0,
        bracket_index=0,
        fraction=0.0,
        current=Sample(timestamp=T0),
        values=values,
    )


class TestFormatting(unittest.TestCase):
    def test_ass_time(self) -> None:
        self.assertEqual(ass_time(0), "0:00:00.00")
        self.assertEqual(ass_time(3723.04), "1:02:03.04")
        self.assertEqual(ass_time(-5), "0:00:00.00")

    def test_format_number(self) -> None:
        self.assertEqual(format_number(None), "---")
        self.assertEqual(format_number(0), "0")
        self.assertEqual(format_number(12.346, 2), "12.35")

    def test_speed_is_shown_in_kmh(self) -> None:
        (speed,) = resolve_fields(["speed"])
        self.assertEqual(speed.render(aligned(enhanced_speed=10.0)), "36.0")
        self.assertEqual(speed.render(aligned(enhanced_speed=None)), "--.-")

    def test_absent_heart_rate_is_dashed_not_zero(self) -> None:
        (hr,) = resolve_fields(["heart_rate"])
        self.assertEqual(hr.render(aligned(heart_rate=None)), "---")
        self.assertEqual(hr.render(aligned(heart_rate=0)), "0")

    def test_resolve_fields(self) -> None:
        keys = [f.key for f in resolve_fields(["power", " speed", "power", ""])]
        self.assertEqual(keys, ["power", "speed"])
        with self.assertRaises(ValueError):
            resolve_fields(["watts"])
        with self.assertRaises(ValueError):
            resolve_fields([""])


class TestMergeSpans(unittest.TestCase):
    def test_identical_consecutive_frames_merge(self) -> None:
        fields = resolve_fields(["power", "heart_rate"])
        frames = [
            (10, aligned(power=100.2, heart_rate=120)),
            (11, aligned(power=100.4, heart_rate=120)),
            (12, aligned(power=101.0, heart_rate=121)),
        ]
        spans = merge_spans(frames, fields)
        got = [(sp.key, sp.start, sp.end, sp.text) for sp in spans]
        self.assertEqual(
            got,
            [
                ("power", 10, 12, "100"),
                ("heart_rate", 10, 12, "120"),
                ("power", 12, 13, "101"),
                ("heart_rate", 12, 13, "121"),
            ],
        )

    def test_gap_in_frames_splits_span(self) -> None:
        fields = resolve_fields(["power"])
        spans = merge_spans([(0, aligned(power=5)), (2, aligned(power=5))], fields)
        self.assertEqual([(sp.start, sp.end) for sp in spans], [(0, 1), (2, 3)])


class TestGenerateAss(unittest.TestCase):
    def test_writes_panel_and_value_events(self) -> None:
        frames = [(i, aligned(power=100 + i, heart_rate=130, enhanced_speed=5.0)) for i in range(25, 50)]
        with TemporaryDirectory() as d:
            out = Path(d) / "overlay.ass"
            written = generate_ass(frames, str(out), fps=25.0, video_w=1920, video_h=1080)
            text = out.read_text(encoding="utf-8")

        self.assertIn("PlayResX: 1920", text)
        self.assertIn("Style: Power,", text)
        self.assertIn("Style: HeartRate,", text)
        # One power event per frame; heart rate and speed are constant.
        self.assertEqual(written, 25 + 1 + 1)
        dialogues = [l for l in text.splitlines() if l.startswith("Dialogue:")]
        self.assertTrue(any("0:00:01.00,0:00:02.00,HeartRate" in l and "130" in l for l in dialogues))
        self.assertTrue(any(",Speed," in l and "18.0" in l for l in dialogues))
        self.assertTrue(any(l.startswith("Dialogue: 0,0:00:01.00,0:00:02.00,Box") for l in dialogues))
        self.assertTrue(any("POWER" in l for l in dialogues))

    def test_no_frames_is_an_error(self) -> None:
        with TemporaryDirectory() as d:
            with self.assertRaises(ValueError):
                generate_ass([], str(Path(d) / "x.ass"), fps=25.0, video_w=1920, video_h=1080)


if __name__ == "__main__":
    unittest.main()
