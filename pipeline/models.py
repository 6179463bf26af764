from dataclasses import dataclass


@dataclass
class TranscriptSegment:
    start: float    # seconds from the start of the video
    end: float      # seconds, never before start
    text: str
