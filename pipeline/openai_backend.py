from typing import Any, Optional

from openai import OpenAI

from app import config
from pipeline.models import TranscriptSegment
from pipeline.transcriber import TranscriptionBackend, TranscriptionError


def _field(obj: Any, key: str, default: Any = None) -> Any:
    # The SDK returns models, compatible servers sometimes return plain dicts.
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


class OpenAIWhisperBackend(TranscriptionBackend):
    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model: str = config.DEFAULT_AUDIO_MODEL,
        client: Optional[Any] = None,
    ):
        if client is None and not api_key:
            raise ValueError("OPENAI_API_KEY is required")

        self.model = model
        self.client = client or OpenAI(api_key=api_key, base_url=base_url or None)

    @property
    def name(self) -> str:
        return "openai"

    def transcribe(self, audio_path: str, offset_seconds: float = 0.0) -> list[TranscriptSegment]:
        try:
            with open(audio_path, "rb") as f:
                response = self.client.audio.transcriptions.create(
                    file=f,
                    model=self.model,
                    response_format="verbose_json",
                    timestamp_granularities=["segment"],
                )
        except Exception as exc:
            raise TranscriptionError(f"Whisper transcription failed: {exc}") from exc

        segments = _field(response, "segments")
        if not segments:
            duration = float(_field(response, "duration") or 0.0)
            return [
                TranscriptSegment(
                    start=offset_seconds,
                    end=offset_seconds + max(0.0, duration),
                    text=str(_field(response, "text") or "").strip(),
                )
            ]

        out: list[TranscriptSegment] = []
        for seg in segments:
            start = max(0.0, float(_field(seg, "start") or 0.0))
            end = max(start, float(_field(seg, "end") or 0.0))
            out.append(
                TranscriptSegment(
                    start=start + offset_seconds,
                    end=end + offset_seconds,
                    text=str(_field(seg, "text") or "").strip(),
                )
            )
        return out
