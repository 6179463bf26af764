from abc import ABC, abstractmethod

from pipeline.models import TranscriptSegment


class TranscriptionError(RuntimeError):
    pass


class TranscriptionBackend(ABC):
    @abstractmethod
    def transcribe(self, audio_path: str, offset_seconds: float = 0.0) -> list[TranscriptSegment]:
        """
        Transcribe one audio file. Returned timestamps are already shifted
        by offset_seconds.
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass
