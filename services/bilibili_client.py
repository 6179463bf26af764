import json
import logging
import os
import random
import re
import shutil
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Optional

from pipeline.models import TranscriptSegment
from services.models import VideoInfo

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
HTML_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
    "image/webp,image/apng,*/*;q=0.8"
)

API_BASE = "https://api.bilibili.com"
WEB_BASE = "https://www.bilibili.com"

BVID_PATTERN = re.compile(r"(BV[a-zA-Z0-9]{10})")
PAGE_PATTERN = re.compile(r"[?&]p=(\d+)")
INITIAL_STATE_PATTERN = re.compile(r"window\.__INITIAL_STATE__\s*=\s*")


class BilibiliAPIError(RuntimeError):
    pass


class AudioDownloadError(RuntimeError):
    pass


class BilibiliClient:
    def __init__(
        self,
        sessdata: str = "",
        csrf_token: str = "",
        request_timeout: Optional[float] = None,
    ):
        self.sessdata = sessdata
        self.csrf_token = csrf_token
        self.request_timeout = request_timeout

    @classmethod
    def from_env(cls) -> "BilibiliClient":
        return cls(
            sessdata=os.getenv("BILIBILI_SESSDATA", "").strip(),
            csrf_token=os.getenv("BILIBILI_JCT", "").strip(),
        )

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "User-Agent": USER_AGENT,
            "Referer": WEB_BASE,
        }
        if self.sessdata:
            headers["Cookie"] = f"SESSDATA={self.sessdata}"
        if extra:
            headers.update(extra)
        return headers

    def _open(self, url: str, data: Optional[bytes] = None, headers: Optional[dict[str, str]] = None):
        req = urllib.request.Request(
            url,
            data=data,
            headers=self._headers(headers),
            method="POST" if data is not None else "GET",
        )
        if self.request_timeout is None:
            return urllib.request.urlopen(req)
        return urllib.request.urlopen(req, timeout=self.request_timeout)

    def _get_text(self, url: str, headers: Optional[dict[str, str]] = None) -> str:
        with self._open(url, headers=headers) as resp:
            return resp.read().decode("utf-8")

    def _get_json(self, url: str) -> dict[str, Any]:
        return json.loads(self._get_text(url))

    def _post_form(self, url: str, fields: dict[str, str]) -> dict[str, Any]:
        payload = urllib.parse.urlencode(fields).encode("utf-8")
        with self._open(
            url,
            data=payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        ) as resp:
            body = resp.read().decode("utf-8")
        return json.loads(body)

    def get_video_info(self, bvid: str, page: int = 1) -> VideoInfo:
        bvid = bvid.strip()
        if not bvid:
            raise ValueError("bvid is required")

        query = urllib.parse.urlencode({"bvid": bvid})
        try:
            data = self._get_json(f"{API_BASE}/x/web-interface/view?{query}")
        except (urllib.error.URLError, ValueError) as exc:
            raise BilibiliAPIError(f"Error fetching video info: {exc}") from exc

        if data.get("code") != 0:
            raise BilibiliAPIError(f"Failed to get video info: {data.get('message')}")

        video = data.get("data") or {}
        cid = int(video.get("cid") or 0)
        title = str(video.get("title", ""))
        duration = int(video.get("duration") or 0)
        total_pages = 1
        current_page = 1

        pages = video.get("pages") or []
        if pages:
            total_pages = len(pages)
            current_page = max(1, min(int(page), total_pages))
            page_info = next((p for p in pages if p.get("page") == current_page), None)
            if page_info is not None:
                cid = int(page_info.get("cid") or cid)
                if total_pages > 1:
                    title = f"{title} - P{current_page} {page_info.get('part', '')}"
                    duration = int(page_info.get("duration") or duration)

        return VideoInfo(
            bvid=str(video.get("bvid") or bvid),
            aid=int(video.get("aid") or 0),
            cid=cid,
            title=title,
            desc=str(video.get("desc") or ""),
            pic=str(video.get("pic") or ""),
            duration=duration,
            pubdate=int(video.get("pubdate") or 0),
            total_pages=total_pages,
            current_page=current_page,
        )

    def get_subtitle_ids_from_page(self, bvid: str) -> list[str]:
        """
        Subtitle ids embedded in the rendered video page. These are more
        trustworthy than the player API, which sometimes serves stale ids.
        Returns [] when the page or its state cannot be read.
        """
        try:
            html = self._get_text(f"{WEB_BASE}/video/{bvid}", headers={"Accept": HTML_ACCEPT})
            return self.parse_subtitle_ids(html)
        except Exception as exc:
            logger.warning("Failed to extract subtitle IDs from page, skipping verification: %s", exc)
            return []

    @staticmethod
    def parse_subtitle_ids(html: str) -> list[str]:
        match = INITIAL_STATE_PATTERN.search(html or "")
        if not match:
            return []

        state, _ = json.JSONDecoder().raw_decode(html, match.end())
        subtitle = ((state or {}).get("videoData") or {}).get("subtitle") or {}
        items = subtitle.get("list")
        if not isinstance(items, list):
            return []

        ids: list[str] = []
        for item in items:
            raw_id = item.get("id_str") or item.get("id")
            if raw_id is not None:
                ids.append(str(raw_id))
        return ids

    @staticmethod
    def player_url(bvid: str, cid: int, aid: Optional[int] = None) -> str:
        params: dict[str, Any] = {"cid": cid, "bvid": bvid}
        if aid:
            params["aid"] = aid
        # Fresh values on every call so upstream caches never replay an empty list.
        params["_"] = int(time.time() * 1000)
        params["r"] = random.random()
        return f"{API_BASE}/x/player/v2?{urllib.parse.urlencode(params)}"

    def get_player_subtitles(self, bvid: str, cid: int, aid: Optional[int] = None) -> list[dict[str, Any]]:
        data = self._get_json(self.player_url(bvid, cid, aid))
        if data.get("code") != 0:
            raise BilibiliAPIError(f"Player API warning: {data.get('message')}")

        subtitle = (data.get("data") or {}).get("subtitle") or {}
        return list(subtitle.get("subtitles") or [])

    def fetch_subtitle_body(self, url: str) -> list[TranscriptSegment]:
        data = self._get_json(url)
        body = data.get("body")
        if not isinstance(body, list):
            return []

        segments: list[TranscriptSegment] = []
        for item in body:
            start = max(0.0, float(item.get("from") or 0.0))
            end = max(start, float(item.get("to") or 0.0))
            segments.append(TranscriptSegment(start=start, end=end, text=str(item.get("content") or "")))
        return segments

    def get_audio_url(self, bvid: str, cid: int) -> Optional[str]:
        # fnval=16 asks for DASH, which carries a separate audio stream.
        query = urllib.parse.urlencode({"bvid": bvid, "cid": cid, "fnval": 16})
        try:
            data = self._get_json(f"{API_BASE}/x/player/playurl?{query}")
        except (urllib.error.URLError, ValueError) as exc:
            logger.error("Error fetching audio url: %s", exc)
            return None

        if data.get("code") != 0:
            logger.warning("PlayUrl API warning: %s", data.get("message"))
            return None

        dash = (data.get("data") or {}).get("dash") or {}
        audio = dash.get("audio") or []
        if not audio:
            return None
        return audio[0].get("baseUrl") or audio[0].get("base_url") or None

    def download_audio(self, url: str, output_path: str) -> str:
        try:
            with self._open(url) as resp, open(output_path, "wb") as out:
                shutil.copyfileobj(resp, out)
        except (urllib.error.URLError, OSError) as exc:
            raise AudioDownloadError(f"Failed to download audio: {exc}") from exc

        if os.path.getsize(output_path) == 0:
            raise AudioDownloadError("Failed to download audio: empty response")
        return output_path

    def post_comment(self, aid: int, message: str) -> bool:
        if not self.csrf_token:
            logger.error("BILIBILI_JCT (CSRF token) is required to post comments.")
            return False

        try:
            data = self._post_form(
                f"{API_BASE}/x/v2/reply/add",
                {
                    "type": "1",
                    "oid": str(aid),
                    "message": message,
                    "csrf": self.csrf_token,
                },
            )
        except (urllib.error.URLError, ValueError) as exc:
            logger.error("Error posting comment: %s", exc)
            return False

        if data.get("code") == 0:
            return True

        logger.error("Failed to post comment: %s (Code: %s)", data.get("message"), data.get("code"))
        return False

    @staticmethod
    def parse_input(text: str) -> tuple[Optional[str], int]:
        match = BVID_PATTERN.search(text or "")
        if not match:
            return None, 1

        page_match = PAGE_PATTERN.search(text)
        page = int(page_match.group(1)) if page_match else 1
        return match.group(1), page
