import os
import subprocess


class MediaToolError(RuntimeError):
    pass


class MediaTools:
    """Thin wrappers around the ffprobe/ffmpeg binaries."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe"):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin

    def probe_duration(self, audio_path: str) -> float:
        cmd = [
            self.ffprobe_bin,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            audio_path,
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            message = result.stderr.strip() or "ffprobe failed"
            raise MediaToolError(f"Failed to probe {audio_path}: {message}")

        raw = result.stdout.strip()
        try:
            return float(raw)
        except ValueError as exc:
            raise MediaToolError(f"ffprobe returned no duration for {audio_path}: {raw!r}") from exc

    def extract_segment(
        self,
        audio_path: str,
        output_path: str,
        start_seconds: float,
        duration_seconds: float,
    ) -> str:
        if duration_seconds <= 0:
            raise MediaToolError("duration_seconds must be positive")

        cmd = [
            self.ffmpeg_bin,
            "-loglevel",
            "error",
            "-ss",
            f"{start_seconds:.3f}",
            "-i",
            audio_path,
            "-t",
            f"{duration_seconds:.3f}",
            "-ar",
            "16000",
            "-ac",
            "1",
            "-y",
            output_path,
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            message = result.stderr.strip() or "ffmpeg failed"
            raise MediaToolError(f"Failed to extract audio chunk: {message}")

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise MediaToolError(f"Extracted chunk is missing or empty: {output_path}")

        return output_path
