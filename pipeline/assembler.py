import logging
import os
from contextlib import contextmanager
from functools import reduce
from typing import Callable, Iterable, Iterator, Optional, Sequence

from pipeline.models import TranscriptSegment
from sources.audio_chunk import AudioChunk

logger = logging.getLogger(__name__)

TranscribeFn = Callable[[str, float], list[TranscriptSegment]]
AssembleState = tuple[float, list[TranscriptSegment]]


def discard_file(path: str) -> None:
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as exc:
        logger.debug("Could not remove temp file %s: %s", path, exc)


@contextmanager
def consumed(chunk: AudioChunk) -> Iterator[AudioChunk]:
    """Yield the chunk and delete its file on the way out, whatever happens."""
    try:
        yield chunk
    finally:
        discard_file(chunk.audio_path)


def _globalize(segments: list[TranscriptSegment], offset: float) -> list[TranscriptSegment]:
    out: list[TranscriptSegment] = []
    for seg in sorted(segments, key=lambda s: s.start):
        start = max(float(seg.start), offset)
        end = max(float(seg.end), start)
        out.append(TranscriptSegment(start=start, end=end, text=seg.text))
    return out


def assemble(
    chunks: Sequence[AudioChunk],
    transcribe_fn: TranscribeFn,
    iterate: Optional[Callable[[Sequence[AudioChunk]], Iterable[AudioChunk]]] = None,
) -> list[TranscriptSegment]:
    """
    Transcribe chunks one after another and stitch the results onto a
    single timeline. The offset advances by each chunk's declared duration.
    """

    def step(state: AssembleState, chunk: AudioChunk) -> AssembleState:
        offset, segments = state
        with consumed(chunk):
            produced = transcribe_fn(chunk.audio_path, offset)
        return offset + float(chunk.duration_seconds), segments + _globalize(produced, offset)

    ordered = sorted(chunks, key=lambda c: c.index)
    try:
        _, segments = reduce(step, iterate(ordered) if iterate else ordered, (0.0, []))
    finally:
        for chunk in ordered:
            discard_file(chunk.audio_path)
    return sorted(segments, key=lambda s: s.start)
