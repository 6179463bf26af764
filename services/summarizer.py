import logging
import re
from typing import Any, Optional

from openai import OpenAI

from app import config
from pipeline.models import TranscriptSegment
from services.models import VideoInfo

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n...(content truncated)..."
EMPTY_SUMMARY = "未能生成总结。"

SYSTEM_PROMPT = """
你是一个视频内容总结助手。
请根据 B 站视频的标题、简介和带时间戳的字幕，写一份便于快速浏览的总结。

要求：
1. 【摘要】用 2-3 句话说明视频的核心主题。
2. 【关键要点】按时间顺序列出主要观点，每条以对应内容开始的时间戳开头（如 [02:15]），描述简洁。
3. 语气客观清晰。
4. 输出纯文本，不使用 Markdown（不要 ##、**、- 等符号）；标题用【】包裹，列表项以 "• " 开头。

示例：
【摘要】
本视频介绍了……

【关键要点】
• [00:30] 交代了项目背景……
• [02:15] 演示了核心功能……
"""


class SummaryError(RuntimeError):
    pass


def format_timestamp(seconds: float) -> str:
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_transcript(segments: list[TranscriptSegment]) -> str:
    return "\n".join(f"[{format_timestamp(seg.start)}] {seg.text}" for seg in segments)


def truncate_transcript(text: str, max_chars: int = config.SUMMARY_MAX_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    logger.warning("Subtitle content too long (%d chars), truncating to %d chars...", len(text), max_chars)
    return text[:max_chars] + TRUNCATION_MARKER


def format_summary_for_comment(summary: str) -> str:
    """Turn a Markdown summary into plain text that reads well in a comment."""
    text = re.sub(r"^##[ \t]*(.+)$", r"\n【\1】", summary, flags=re.MULTILINE)
    text = re.sub(r"^\n+【", "\n【", text, flags=re.MULTILINE)
    text = re.sub(r"^-[ \t]+", "• ", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*(.*?)\*\*", r"\1", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class Summarizer:
    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        max_chars: int = config.SUMMARY_MAX_CHARS,
        client: Optional[Any] = None,
    ):
        if client is None and not api_key:
            raise ValueError("OPENAI_API_KEY is required")

        self.max_chars = max_chars
        self.client = client or OpenAI(api_key=api_key, base_url=base_url or None)

    def build_user_message(self, video_info: VideoInfo, segments: list[TranscriptSegment]) -> str:
        transcript = truncate_transcript(format_transcript(segments), self.max_chars)
        desc = video_info.desc[: config.SUMMARY_DESC_MAX_CHARS]
        return f"视频标题：{video_info.title}\n视频简介：{desc}...\n\n字幕内容：\n{transcript}\n"

    def summarize(
        self,
        video_info: VideoInfo,
        segments: list[TranscriptSegment],
        model: str = config.DEFAULT_CHAT_MODEL,
    ) -> str:
        try:
            completion = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_user_message(video_info, segments)},
                ],
                temperature=1,
            )
        except Exception as exc:
            raise SummaryError(f"AI generation failed: {exc}") from exc

        if not completion.choices:
            return EMPTY_SUMMARY
        return completion.choices[0].message.content or EMPTY_SUMMARY
