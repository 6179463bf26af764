from dataclasses import dataclass
from typing import Any


@dataclass
class VideoInfo:
    bvid: str
    aid: int
    cid: int
    title: str
    desc: str = ""
    pic: str = ""
    duration: int = 0
    pubdate: int = 0
    total_pages: int = 1
    current_page: int = 1


@dataclass(frozen=True)
class SubtitleTrack:
    id: str
    language: str
    subtitle_url: str = ""

    @property
    def is_fetchable(self) -> bool:
        return bool(self.subtitle_url)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SubtitleTrack":
        raw_id = payload.get("id_str") or payload.get("id")
        return cls(
            id="" if raw_id is None else str(raw_id),
            language=str(payload.get("lan") or ""),
            subtitle_url=str(payload.get("subtitle_url") or ""),
        )
