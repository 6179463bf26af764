import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Optional

from sources.audio_chunk import AudioChunk
from sources.media_tools import MediaTools

logger = logging.getLogger(__name__)

MIN_TAIL_SECONDS = 0.5


class AudioSplitError(RuntimeError):
    pass


class AudioSplitter:
    def __init__(
        self,
        media: Optional[MediaTools] = None,
        output_ext: str = ".mp3",
        max_workers: Optional[int] = None,
    ):
        self.media = media or MediaTools()
        self.output_ext = output_ext
        self.max_workers = max_workers

    def plan(self, audio_path: str, total_seconds: float, segment_seconds: float) -> list[AudioChunk]:
        """
        Chunk descriptors for a source of the given length. The last chunk
        only covers the remainder so the durations add up to the source.
        """
        if segment_seconds <= 0:
            raise ValueError("segment_seconds must be positive")

        num_segments = math.ceil(total_seconds / segment_seconds)
        # a sliver of a tail is merged into the previous chunk
        if num_segments > 1 and total_seconds - (num_segments - 1) * segment_seconds < MIN_TAIL_SECONDS:
            num_segments -= 1
        base_name = os.path.splitext(os.path.basename(audio_path))[0]
        out_dir = os.path.dirname(audio_path)

        chunks: list[AudioChunk] = []
        for i in range(num_segments):
            start = i * segment_seconds
            is_last = i == num_segments - 1
            chunks.append(
                AudioChunk(
                    audio_path=os.path.join(out_dir, f"{base_name}_part{i}{self.output_ext}"),
                    duration_seconds=(total_seconds - start) if is_last else float(segment_seconds),
                    index=i,
                    start_seconds=float(start),
                )
            )
        return chunks

    def split(self, audio_path: str, segment_seconds: float = 600) -> list[AudioChunk]:
        try:
            total_seconds = self.media.probe_duration(audio_path)
        except Exception as exc:
            raise AudioSplitError(f"Failed to split audio: {exc}") from exc

        chunks = self.plan(audio_path, total_seconds, segment_seconds)
        if not chunks:
            return []

        workers = self.max_workers or len(chunks)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(
                    self.media.extract_segment,
                    audio_path,
                    chunk.audio_path,
                    chunk.start_seconds,
                    chunk.duration_seconds,
                )
                for chunk in chunks
            ]
            wait(futures)

        failures = [f.exception() for f in futures if f.exception() is not None]
        if failures:
            self.discard(chunks)
            raise AudioSplitError(f"Failed to split audio: {failures[0]}") from failures[0]

        return chunks

    @staticmethod
    def discard(chunks: list[AudioChunk]) -> None:
        for chunk in chunks:
            try:
                if os.path.exists(chunk.audio_path):
                    os.remove(chunk.audio_path)
            except OSError as exc:
                logger.debug("Could not remove chunk %s: %s", chunk.audio_path, exc)
