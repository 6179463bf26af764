import logging
import os
import time
from dataclasses import dataclass, field
from typing import Optional

from app import config
from pipeline.assembler import discard_file
from pipeline.models import TranscriptSegment
from pipeline.transcript_pipeline import TranscriptPipeline
from services.bilibili_client import BilibiliClient
from services.models import VideoInfo
from services.subtitle_resolver import SubtitleResolver
from services.summarizer import Summarizer, format_summary_for_comment, format_transcript

logger = logging.getLogger(__name__)


class SummaryInputError(ValueError):
    pass


class AudioUnavailableError(RuntimeError):
    pass


@dataclass
class SummaryResult:
    video: VideoInfo
    segments: list[TranscriptSegment] = field(default_factory=list)
    source: str = "none"             # "subtitles", "transcription" or "none"
    summary: Optional[str] = None
    transcript_path: Optional[str] = None
    reason: Optional[str] = None


class SummaryService:
    def __init__(
        self,
        client: BilibiliClient,
        resolver: SubtitleResolver,
        summarizer: Summarizer,
        pipeline: TranscriptPipeline,
        chat_model: str = config.DEFAULT_CHAT_MODEL,
        temp_audio_dir: str = config.TEMP_AUDIO_DIR,
        transcript_dir: str = config.TRANSCRIPT_DIR,
    ):
        self.client = client
        self.resolver = resolver
        self.summarizer = summarizer
        self.pipeline = pipeline
        self.chat_model = chat_model
        self.temp_audio_dir = temp_audio_dir
        self.transcript_dir = transcript_dir

    def run(
        self,
        video_ref: str,
        transcribe: bool = False,
        force_transcribe: bool = False,
    ) -> SummaryResult:
        bvid, page = BilibiliClient.parse_input(video_ref)
        if not bvid:
            raise SummaryInputError("Invalid Bilibili video ID or URL.")

        video = self.client.get_video_info(bvid, page)
        result = SummaryResult(video=video)

        if not force_transcribe:
            result.segments = self.resolver.resolve(video.bvid, video.cid, video.aid)
            if result.segments:
                result.source = "subtitles"

        if not result.segments:
            if not (transcribe or force_transcribe):
                result.reason = "No subtitles found. Use --transcribe to enable audio transcription."
                return result

            logger.info("No subtitles used, transcribing audio with %s", self.pipeline.backend.name)
            result.segments = self.transcribe_audio(video)
            result.source = "transcription"

        result.transcript_path = self.save_transcript(video, result.segments)
        result.summary = self.summarizer.summarize(video, result.segments, model=self.chat_model)
        return result

    def transcribe_audio(self, video: VideoInfo) -> list[TranscriptSegment]:
        audio_url = self.client.get_audio_url(video.bvid, video.cid)
        if not audio_url:
            raise AudioUnavailableError("No subtitles and no audio stream found. Cannot generate summary.")

        os.makedirs(self.temp_audio_dir, exist_ok=True)
        audio_path = os.path.join(
            self.temp_audio_dir,
            f"{video.bvid}_{int(time.time() * 1000)}.m4a",
        )

        try:
            self.client.download_audio(audio_url, audio_path)
            return self.pipeline.transcribe_file(audio_path)
        finally:
            discard_file(audio_path)
            try:
                os.rmdir(self.temp_audio_dir)
            except OSError as exc:
                logger.debug("Keeping temp audio dir %s: %s", self.temp_audio_dir, exc)

    def save_transcript(self, video: VideoInfo, segments: list[TranscriptSegment]) -> str:
        os.makedirs(self.transcript_dir, exist_ok=True)
        path = os.path.join(
            self.transcript_dir,
            f"{video.bvid}_{int(time.time() * 1000)}.txt",
        )
        with open(path, "w", encoding="utf-8") as f:
            f.write(format_transcript(segments))
        return path

    def post_comment(self, result: SummaryResult) -> bool:
        if not result.summary:
            return False
        return self.client.post_comment(result.video.aid, format_summary_for_comment(result.summary))
