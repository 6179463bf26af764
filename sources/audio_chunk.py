# sources/audio_chunk.py
from dataclasses import dataclass

@dataclass
class AudioChunk:
    audio_path: str          # path to the trimmed chunk file
    duration_seconds: float  # declared length of this chunk
    index: int = 0           # position within the source file
    start_seconds: float = 0.0  # where the chunk starts in the source
