import os
from typing import Optional

from app import config
from pipeline.openai_backend import OpenAIWhisperBackend
from pipeline.transcriber import TranscriptionBackend
from pipeline.volc_backend import VolcBackend


def volc_configured(environ: dict[str, str]) -> bool:
    return bool(environ.get("VOLC_APP_KEY", "").strip() and environ.get("VOLC_ACCESS_KEY", "").strip())


def select_backend(
    environ: Optional[dict[str, str]] = None,
    openai_api_key: Optional[str] = None,
    openai_base_url: Optional[str] = None,
) -> TranscriptionBackend:
    """
    Pick the speech-to-text backend once, from whichever credentials are
    configured. Volcengine wins when both providers are available.
    """
    env = os.environ if environ is None else environ

    if volc_configured(env):
        return VolcBackend.from_env(env)

    api_key = openai_api_key or env.get("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise ValueError(
            "No transcription backend configured: set VOLC_APP_KEY and VOLC_ACCESS_KEY, or OPENAI_API_KEY"
        )

    return OpenAIWhisperBackend(
        api_key=api_key,
        base_url=openai_base_url or env.get("OPENAI_BASE_URL", "").strip() or None,
        model=env.get("OPENAI_AUDIO_MODEL", "").strip() or config.DEFAULT_AUDIO_MODEL,
    )
