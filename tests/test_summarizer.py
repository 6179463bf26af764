import unittest
from types import SimpleNamespace
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pipeline.models import TranscriptSegment
from services.models import VideoInfo
from services.summarizer import (
    EMPTY_SUMMARY,
    SYSTEM_PROMPT,
    TRUNCATION_MARKER,
    SummaryError,
    Summarizer,
    format_summary_for_comment,
    format_timestamp,
    format_transcript,
    truncate_transcript,
)


class FakeCompletions:
    def __init__(self, content: str | None = "summary", error: Exception | None = None, empty: bool = False):
        self.content = content
        self.error = error
        self.empty = empty
        self.kwargs: dict = {}

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        if self.empty:
            return SimpleNamespace(choices=[])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


class FakeOpenAI:
    def __init__(self, completions: FakeCompletions):
        self.chat = SimpleNamespace(completions=completions)


def video() -> VideoInfo:
    return VideoInfo(bvid="BV1uT4y1P7CX", aid=1, cid=2, title="标题", desc="简介" * 400)


class TestFormatting(unittest.TestCase):
    def test_timestamps(self) -> None:
        self.assertEqual(format_timestamp(0), "00:00")
        self.assertEqual(format_timestamp(75.9), "01:15")
        self.assertEqual(format_timestamp(3725), "01:02:05")

    def test_transcript_lines(self) -> None:
        segments = [
            TranscriptSegment(start=1.0, end=2.0, text="first"),
            TranscriptSegment(start=605.0, end=608.0, text="second"),
        ]
        self.assertEqual(format_transcript(segments), "[00:01] first\n[10:05] second")

    def test_truncation_keeps_exact_ceiling(self) -> None:
        text = "x" * 120
        out = truncate_transcript(text, max_chars=100)
        self.assertEqual(out, "x" * 100 + TRUNCATION_MARKER)
        self.assertEqual(out.count(TRUNCATION_MARKER), 1)
        self.assertEqual(truncate_transcript("short", max_chars=100), "short")
        self.assertEqual(truncate_transcript("y" * 100, max_chars=100), "y" * 100)

    def test_comment_formatting(self) -> None:
        summary = "## 摘要\n这是**重点**内容。\n\n\n\n## 关键要点\n- [00:30] 背景\n- [02:15] 演示"
        self.assertEqual(
            format_summary_for_comment(summary),
            "【摘要】\n这是重点内容。\n\n【关键要点】\n• [00:30] 背景\n• [02:15] 演示",
        )

    def test_comment_formatting_leaves_plain_text(self) -> None:
        plain = "【摘要】\n内容\n\n【关键要点】\n• [00:10] 一"
        self.assertEqual(format_summary_for_comment(plain), plain)


class TestSummarizer(unittest.TestCase):
    def test_summarize_sends_prompt_and_transcript(self) -> None:
        completions = FakeCompletions(content="【摘要】好")
        summarizer = Summarizer(api_key="sk", client=FakeOpenAI(completions))
        segments = [TranscriptSegment(start=65.0, end=70.0, text="hello")]

        out = summarizer.summarize(video(), segments, model="gpt-test")

        self.assertEqual(out, "【摘要】好")
        self.assertEqual(completions.kwargs["model"], "gpt-test")
        system, user = completions.kwargs["messages"]
        self.assertEqual(system, {"role": "system", "content": SYSTEM_PROMPT})
        self.assertIn("视频标题：标题", user["content"])
        self.assertIn("[01:05] hello", user["content"])
        self.assertIn("简介" * 250 + "...", user["content"])
        self.assertNotIn("简介" * 251, user["content"])

    def test_long_transcript_is_truncated(self) -> None:
        completions = FakeCompletions()
        summarizer = Summarizer(api_key="sk", max_chars=50, client=FakeOpenAI(completions))
        segments = [TranscriptSegment(start=i, end=i + 1, text="line") for i in range(40)]

        summarizer.summarize(video(), segments)

        self.assertIn(TRUNCATION_MARKER, completions.kwargs["messages"][1]["content"])

    def test_empty_reply(self) -> None:
        summarizer = Summarizer(api_key="sk", client=FakeOpenAI(FakeCompletions(empty=True)))
        self.assertEqual(summarizer.summarize(video(), []), EMPTY_SUMMARY)

        summarizer = Summarizer(api_key="sk", client=FakeOpenAI(FakeCompletions(content=None)))
        self.assertEqual(summarizer.summarize(video(), []), EMPTY_SUMMARY)

    def test_errors_are_wrapped(self) -> None:
        summarizer = Summarizer(api_key="sk", client=FakeOpenAI(FakeCompletions(error=RuntimeError("quota"))))
        with self.assertRaises(SummaryError) as ctx:
            summarizer.summarize(video(), [])
        self.assertIn("AI generation failed", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
