import base64
import json
import logging
import os
import urllib.error
import urllib.request
import uuid
from typing import Any, Optional

from app import config
from pipeline.models import TranscriptSegment
from pipeline.transcriber import TranscriptionBackend, TranscriptionError

logger = logging.getLogger(__name__)

VOLC_ASR_URL = "https://openspeech.bytedance.com/api/v1/asr"
VOLC_FLASH_URL = "https://openspeech.bytedance.com/api/v3/auc/bigmodel/recognize/flash"
VOLC_WORKFLOW = "audio_in,resample,partition,vad,fe,decode,itn,nlu_punctuate"
VOLC_SUCCESS_CODE = 1000

CLUSTER_UNAVAILABLE_MARKER = "no available instances"
RESOURCE_NOT_ALLOWED_MARKER = "is not allowed"

NOT_ALLOWED_GUIDANCE = (
    "The configured Volcengine resource is not supported by the short-audio/flash interface. "
    "Make sure the app has 'Short Audio Recognition' or 'Flash Recognition' enabled; "
    "'volc.bigasr.auc' belongs to the async API and cannot transcribe local files."
)


class VolcAPIError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class VolcConfigurationError(TranscriptionError):
    pass


def response_code(data: dict[str, Any]) -> Any:
    if data.get("code") is not None:
        return data.get("code")
    return (data.get("resp") or {}).get("code")


def response_message(data: dict[str, Any]) -> str:
    return str(data.get("message") or (data.get("resp") or {}).get("message") or "Unknown")


def has_result(data: dict[str, Any]) -> bool:
    result = data.get("result")
    if isinstance(result, list) and len(result) > 0:
        return True
    if isinstance(result, dict) and result.get("text"):
        return True
    return bool((data.get("resp") or {}).get("text"))


def is_success(data: dict[str, Any]) -> bool:
    # Endpoint variants populate different fields; any one signal is enough.
    return (
        has_result(data)
        or response_code(data) == VOLC_SUCCESS_CODE
        or response_message(data) == "Success"
    )


def extract_text(data: dict[str, Any]) -> str:
    result = data.get("result")
    if isinstance(result, list) and result and isinstance(result[0], dict):
        return str(result[0].get("text") or "")
    if isinstance(result, dict) and result.get("text"):
        return str(result["text"])
    resp = data.get("resp") or {}
    if resp.get("text"):
        return str(resp["text"])
    return ""


def _utterances(data: dict[str, Any]) -> list[dict[str, Any]]:
    result = data.get("result")
    if isinstance(result, list) and result and isinstance(result[0], dict):
        return list(result[0].get("utterances") or [])
    if isinstance(result, dict):
        return list(result.get("utterances") or [])
    return []


def _reported_duration_seconds(data: dict[str, Any]) -> Optional[float]:
    for raw in (
        (data.get("audio_info") or {}).get("duration"),
        (data.get("addition") or {}).get("duration"),
    ):
        try:
            if raw is not None:
                return float(raw) / 1000.0
        except (TypeError, ValueError):
            continue
    return None


class VolcBackend(TranscriptionBackend):
    def __init__(
        self,
        app_key: str,
        access_key: str,
        cluster: str = config.DEFAULT_VOLC_CLUSTER,
        api_url: Optional[str] = None,
        audio_format: Optional[str] = None,
        sample_rate: int = 16000,
        uid: str = "bili_summary_agent",
        request_timeout: Optional[float] = None,
        default_span_seconds: float = 50.0,
    ):
        if not app_key:
            raise ValueError("VOLC_APP_KEY is required")
        if not access_key:
            raise ValueError("VOLC_ACCESS_KEY is required")

        self.app_key = app_key
        self.access_key = access_key
        self.cluster = cluster or config.DEFAULT_VOLC_CLUSTER
        self.api_url = api_url
        self.audio_format = audio_format
        self.sample_rate = sample_rate
        self.uid = uid
        self.request_timeout = request_timeout
        self.default_span_seconds = default_span_seconds

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "VolcBackend":
        env = os.environ if environ is None else environ
        return cls(
            app_key=env.get("VOLC_APP_KEY", "").strip(),
            access_key=env.get("VOLC_ACCESS_KEY", "").strip(),
            cluster=env.get("VOLC_CLUSTER", "").strip() or config.DEFAULT_VOLC_CLUSTER,
            api_url=env.get("VOLC_API_URL", "").strip() or None,
        )

    @property
    def name(self) -> str:
        return "volc"

    @staticmethod
    def endpoint_for_cluster(cluster: str) -> str:
        if cluster.endswith("_turbo") or cluster.endswith(".flash"):
            return VOLC_FLASH_URL
        return VOLC_ASR_URL

    @property
    def endpoint(self) -> str:
        return self.api_url or self.endpoint_for_cluster(self.cluster)

    def format_for(self, audio_path: str) -> str:
        if self.audio_format:
            return self.audio_format
        ext = os.path.splitext(audio_path)[1].lstrip(".").lower()
        return ext or "mp3"

    def transcribe(self, audio_path: str, offset_seconds: float = 0.0) -> list[TranscriptSegment]:
        try:
            with open(audio_path, "rb") as f:
                audio_b64 = base64.b64encode(f.read()).decode("ascii")
        except OSError as exc:
            raise TranscriptionError(f"Volc transcription failed: {exc}") from exc

        audio_format = self.format_for(audio_path)
        try:
            data = self._recognize(self.endpoint, audio_b64, audio_format, cluster=self.cluster)
        except VolcAPIError as exc:
            if CLUSTER_UNAVAILABLE_MARKER in exc.message:
                logger.warning(
                    "Volc cluster '%s' not found/unavailable, retrying without cluster...",
                    self.cluster,
                )
                try:
                    data = self._recognize(VOLC_ASR_URL, audio_b64, audio_format, cluster=None)
                except VolcAPIError as fallback_exc:
                    raise TranscriptionError(
                        f"Volc transcription failed (no-cluster fallback): {fallback_exc.message}"
                    ) from fallback_exc
            elif RESOURCE_NOT_ALLOWED_MARKER in exc.message:
                raise VolcConfigurationError(
                    f"Volc transcription failed: {exc.message}. {NOT_ALLOWED_GUIDANCE}"
                ) from exc
            else:
                raise TranscriptionError(f"Volc transcription failed: {exc.message}") from exc

        return self._to_segments(data, offset_seconds)

    def _recognize(
        self,
        url: str,
        audio_b64: str,
        audio_format: str,
        cluster: Optional[str],
    ) -> dict[str, Any]:
        req_id = str(uuid.uuid4())

        app: dict[str, str] = {"appid": self.app_key, "token": self.access_key}
        headers = {
            "Content-Type": "application/json",
            "X-Api-App-Key": self.app_key,
            "X-Api-Access-Key": self.access_key,
            "X-Api-Request-Id": req_id,
        }
        if cluster:
            app["cluster"] = cluster
            headers["X-Api-Resource-Id"] = cluster

        payload = {
            "app": app,
            "user": {"uid": self.uid},
            "audio": {
                "format": audio_format,
                "rate": self.sample_rate,
                "channel": 1,
                "cuted": False,
                "data": audio_b64,
            },
            "request": {
                "reqid": req_id,
                "workflow": VOLC_WORKFLOW,
                "sequence": 1,
            },
        }

        data = self._post_json(url, payload, headers)
        if not is_success(data):
            raise VolcAPIError(f"Volc API Error: {json.dumps(data, ensure_ascii=False)}")
        return data

    def _post_json(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        req = urllib.request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers=headers,
            method="POST",
        )

        timeout = {} if self.request_timeout is None else {"timeout": self.request_timeout}
        try:
            with urllib.request.urlopen(req, **timeout) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            raw = exc.read().decode("utf-8", errors="replace")
            message = raw or str(exc)
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, dict) and parsed.get("message"):
                    message = str(parsed["message"])
            except ValueError:
                pass
            raise VolcAPIError(message) from exc
        except urllib.error.URLError as exc:
            raise VolcAPIError(str(exc.reason)) from exc

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise VolcAPIError(f"Volc API returned invalid JSON: {body[:200]}") from exc
        if not isinstance(data, dict):
            raise VolcAPIError(f"Volc API returned unexpected payload: {body[:200]}")
        return data

    def _to_segments(self, data: dict[str, Any], offset_seconds: float) -> list[TranscriptSegment]:
        segments: list[TranscriptSegment] = []
        for utt in _utterances(data):
            text = str(utt.get("text") or "").strip()
            if not text:
                continue
            start = max(0.0, float(utt.get("start_time") or 0) / 1000.0)
            end = max(start, float(utt.get("end_time") or 0) / 1000.0)
            segments.append(
                TranscriptSegment(start=start + offset_seconds, end=end + offset_seconds, text=text)
            )
        if segments:
            return segments

        span = _reported_duration_seconds(data)
        if span is None:
            span = self.default_span_seconds
        return [
            TranscriptSegment(
                start=offset_seconds,
                end=offset_seconds + max(0.0, span),
                text=extract_text(data),
            )
        ]
