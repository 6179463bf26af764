import os
import tempfile
import threading
import time
import unittest
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sources.audio_splitter import AudioSplitError, AudioSplitter
from sources.media_tools import MediaToolError


class FakeMedia:
    def __init__(self, duration: float, fail_index: int | None = None):
        self.duration = duration
        self.fail_index = fail_index
        self.calls: list[tuple[str, float, float]] = []
        self._lock = threading.Lock()

    def probe_duration(self, audio_path: str) -> float:
        return self.duration

    def extract_segment(self, audio_path: str, output_path: str, start_seconds: float, duration_seconds: float) -> str:
        index = int(output_path.rsplit("_part", 1)[1].split(".")[0])
        # finish out of order: earlier chunks take longer
        time.sleep(0.01 * (5 - min(index, 5)))
        with self._lock:
            self.calls.append((output_path, start_seconds, duration_seconds))
        if index == self.fail_index:
            raise MediaToolError("ffmpeg exploded")
        with open(output_path, "wb") as f:
            f.write(b"chunk")
        return output_path


class TestAudioSplitter(unittest.TestCase):
    def test_splits_into_bounded_chunks(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            source = os.path.join(tmp, "BV1_123.m4a")
            splitter = AudioSplitter(media=FakeMedia(1830.0))  # type: ignore[arg-type]

            chunks = splitter.split(source, segment_seconds=600)

            self.assertEqual([c.duration_seconds for c in chunks], [600, 600, 600, 30])
            self.assertEqual([c.start_seconds for c in chunks], [0, 600, 1200, 1800])
            self.assertEqual([c.index for c in chunks], [0, 1, 2, 3])
            self.assertEqual(
                [os.path.basename(c.audio_path) for c in chunks],
                ["BV1_123_part0.mp3", "BV1_123_part1.mp3", "BV1_123_part2.mp3", "BV1_123_part3.mp3"],
            )
            self.assertAlmostEqual(sum(c.duration_seconds for c in chunks), 1830.0)
            for chunk in chunks:
                self.assertTrue(os.path.exists(chunk.audio_path))

    def test_extraction_uses_declared_durations(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = FakeMedia(1250.0)
            AudioSplitter(media=media).split(os.path.join(tmp, "a.m4a"), segment_seconds=600)  # type: ignore[arg-type]

            by_start = sorted(media.calls, key=lambda c: c[1])
            self.assertEqual([(c[1], c[2]) for c in by_start], [(0, 600), (600, 600), (1200, 50)])

    def test_exact_multiple_has_no_empty_tail(self) -> None:
        splitter = AudioSplitter(media=FakeMedia(1200.0))  # type: ignore[arg-type]
        chunks = splitter.plan("/tmp/x.m4a", 1200.0, 600)
        self.assertEqual([c.duration_seconds for c in chunks], [600, 600])

    def test_sliver_tail_merges_into_previous_chunk(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = FakeMedia(1800.000001)
            chunks = AudioSplitter(media=media).split(os.path.join(tmp, "a.m4a"), segment_seconds=600)  # type: ignore[arg-type]

            self.assertEqual(len(chunks), 3)
            self.assertEqual([c.duration_seconds for c in chunks[:2]], [600, 600])
            self.assertAlmostEqual(chunks[2].duration_seconds, 600.000001)
            self.assertAlmostEqual(sum(c.duration_seconds for c in chunks), 1800.000001)
            self.assertEqual(len(media.calls), 3)

    def test_short_source_keeps_single_chunk(self) -> None:
        splitter = AudioSplitter(media=FakeMedia(0.2))  # type: ignore[arg-type]
        chunks = splitter.plan("/tmp/x.m4a", 0.2, 600)
        self.assertEqual([c.duration_seconds for c in chunks], [0.2])

    def test_zero_duration_gives_no_chunks(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            splitter = AudioSplitter(media=FakeMedia(0.0))  # type: ignore[arg-type]
            self.assertEqual(splitter.split(os.path.join(tmp, "a.m4a")), [])

    def test_any_failure_fails_whole_split(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            source = os.path.join(tmp, "a.m4a")
            splitter = AudioSplitter(media=FakeMedia(1830.0, fail_index=2))  # type: ignore[arg-type]

            with self.assertRaises(AudioSplitError) as ctx:
                splitter.split(source, segment_seconds=600)

            self.assertIn("ffmpeg exploded", str(ctx.exception))
            leftovers = [name for name in os.listdir(tmp) if "_part" in name]
            self.assertEqual(leftovers, [])

    def test_probe_failure_is_wrapped(self) -> None:
        class BrokenMedia(FakeMedia):
            def probe_duration(self, audio_path: str) -> float:
                raise MediaToolError("not audio")

        splitter = AudioSplitter(media=BrokenMedia(0.0))  # type: ignore[arg-type]
        with self.assertRaises(AudioSplitError):
            splitter.split("/nonexistent.m4a")


if __name__ == "__main__":
    unittest.main()
