import logging
import time
from typing import Callable, Iterable, Optional

from app import config
from pipeline.models import TranscriptSegment
from services.bilibili_client import BilibiliClient
from services.models import SubtitleTrack

logger = logging.getLogger(__name__)

AI_SUBTITLE_PATH = "/ai_subtitle/"


class SubtitleFetchError(RuntimeError):
    pass


def reconcile(tracks: list[SubtitleTrack], authoritative_ids: Iterable[str]) -> list[SubtitleTrack]:
    """
    Tracks worth fetching. With authoritative ids, a track must be listed
    there and have a URL; without them only the URL is checked.
    """
    valid = set(authoritative_ids)
    if valid:
        return [t for t in tracks if t.id in valid and t.is_fetchable]
    return [t for t in tracks if t.is_fetchable]


def select_best(tracks: list[SubtitleTrack]) -> Optional[SubtitleTrack]:
    if not tracks:
        return None

    candidates = [t for t in tracks if t.language == "ai-zh"]
    if not candidates:
        candidates = [t for t in tracks if t.language == "zh-CN"]
    if not candidates:
        candidates = [t for t in tracks if t.language.startswith("zh")]
    if not candidates:
        candidates = list(tracks)

    for track in candidates:
        if AI_SUBTITLE_PATH in track.subtitle_url:
            return track
    return candidates[0]


def normalize_subtitle_url(url: str) -> str:
    if url.startswith("//"):
        return f"https:{url}"
    return url


class SubtitleResolver:
    def __init__(
        self,
        client: BilibiliClient,
        max_retries: int = config.SUBTITLE_MAX_RETRIES,
        retry_delay: float = config.SUBTITLE_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def resolve(self, bvid: str, cid: int, aid: Optional[int] = None) -> list[TranscriptSegment]:
        valid_ids = self.client.get_subtitle_ids_from_page(bvid)
        last_seen: list[SubtitleTrack] = []

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                self._sleep(self.retry_delay)

            try:
                payload = self.client.get_player_subtitles(bvid, cid, aid)
            except Exception as exc:
                logger.warning("Subtitle list attempt %d failed: %s", attempt + 1, exc)
                continue

            tracks = [SubtitleTrack.from_payload(item) for item in payload]
            if not tracks:
                continue

            last_seen = tracks
            usable = reconcile(tracks, valid_ids)
            if usable:
                return self._fetch(select_best(usable))

            logger.debug(
                "No usable subtitle track on attempt %d (expected ids %s, got %s)",
                attempt + 1,
                valid_ids,
                [t.id for t in tracks],
            )

        return self._fetch(select_best(last_seen))

    def _fetch(self, track: Optional[SubtitleTrack]) -> list[TranscriptSegment]:
        if track is None:
            return []
        if not track.is_fetchable:
            logger.warning("Best subtitle track %s (%s) has no URL yet", track.id, track.language)
            return []

        url = normalize_subtitle_url(track.subtitle_url)
        logger.info("Subtitle URL: %s", url)
        try:
            segments = self.client.fetch_subtitle_body(url)
        except Exception as exc:
            raise SubtitleFetchError(f"Failed to download subtitle content: {exc}") from exc
        return sorted(segments, key=lambda s: s.start)
