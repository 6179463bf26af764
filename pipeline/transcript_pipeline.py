import logging
import os
from typing import Optional

from tqdm import tqdm

from app import config
from pipeline.assembler import assemble
from pipeline.models import TranscriptSegment
from pipeline.transcriber import TranscriptionBackend
from sources.audio_splitter import AudioSplitter

logger = logging.getLogger(__name__)


class TranscriptPipeline:
    def __init__(
        self,
        backend: TranscriptionBackend,
        splitter: Optional[AudioSplitter] = None,
        max_upload_bytes: int = config.MAX_UPLOAD_BYTES,
        chunk_seconds: int = config.CHUNK_SECONDS,
        show_progress: bool = False,
    ):
        self.backend = backend
        self.splitter = splitter or AudioSplitter()
        self.max_upload_bytes = max_upload_bytes
        self.chunk_seconds = chunk_seconds
        self.show_progress = show_progress

    def needs_split(self, audio_path: str) -> bool:
        return os.path.getsize(audio_path) >= self.max_upload_bytes

    def transcribe_file(self, audio_path: str) -> list[TranscriptSegment]:
        if not self.needs_split(audio_path):
            return sorted(self.backend.transcribe(audio_path, 0.0), key=lambda s: s.start)

        size_mb = os.path.getsize(audio_path) / (1024 * 1024)
        logger.info("Audio file too large (%.2fMB), splitting...", size_mb)
        chunks = self.splitter.split(audio_path, self.chunk_seconds)

        def _progress(items):
            return tqdm(items, unit="chunk", desc=f"Transcribing ({self.backend.name})")

        return assemble(
            chunks,
            self.backend.transcribe,
            iterate=_progress if self.show_progress else None,
        )
