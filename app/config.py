from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"

TEMP_AUDIO_DIR = str(DATA_DIR / "temp_audio")
TRANSCRIPT_DIR = str(DATA_DIR / "temp_subtitles")

SUBTITLE_MAX_RETRIES = 3
SUBTITLE_RETRY_DELAY_SECONDS = 0.5

CHUNK_SECONDS = 600
# Whisper-style providers reject uploads of 25 MB and more.
MAX_UPLOAD_BYTES = 24 * 1024 * 1024

SUMMARY_MAX_CHARS = 50000
SUMMARY_DESC_MAX_CHARS = 500

DEFAULT_CHAT_MODEL = "gpt-4o-mini"
DEFAULT_AUDIO_MODEL = "whisper-1"
DEFAULT_VOLC_CLUSTER = "volc_auc_common"
