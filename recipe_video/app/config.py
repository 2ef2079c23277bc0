from __future__ import annotations

import os
import sys
import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from recipe_video.app.domain.models import Stage


def _default_workers() -> int:
    return min(8, (os.cpu_count() or 1) + 2)


class PipelineSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    # Filesystem
    TEMP_ROOT: Path = Path(tempfile.gettempdir()) / "recipe-video-runs"
    MEDIA_ROOT: Path = Path("media")
    UPLOAD_DIR: Path = Path(tempfile.gettempdir()) / "recipe-video-uploads"
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024

    # External tools
    FFMPEG_BIN: str = "ffmpeg"
    FFPROBE_BIN: str = "ffprobe"
    YTDLP_COMMAND: list[str] = Field(default_factory=lambda: [sys.executable, "-m", "yt_dlp"])
    DOWNLOAD_FORMAT: str = "best[height<=720]"
    THUMBNAIL_OFFSET: str = "00:00:02"
    FRAME_OFFSET: str = "00:00:05"

    # Per-stage timeouts (seconds)
    ACQUIRE_TIMEOUT_SECONDS: float = 300
    NORMALIZE_TIMEOUT_SECONDS: float = 300
    ANALYZE_TIMEOUT_SECONDS: float = 180
    SYNTHESIZE_TIMEOUT_SECONDS: float = 120
    FINALIZE_TIMEOUT_SECONDS: float = 60
    CANCEL_GRACE_SECONDS: float = 5

    # Concurrency
    MAX_CONCURRENT_RUNS: int = 2
    MAX_WORKERS: int = Field(default_factory=_default_workers)

    # Models
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    WHISPER_MODEL: str = "medium"
    WHISPER_DEVICE: str = "auto"  # auto, cuda, cpu
    WHISPER_BEAM_SIZE: int = 5
    TRANSCRIPTION_LANGUAGE: str = "pt"

    def timeout_for(self, stage: Stage) -> float:
        timeouts = {
            Stage.ACQUIRING: self.ACQUIRE_TIMEOUT_SECONDS,
            Stage.NORMALIZING: self.NORMALIZE_TIMEOUT_SECONDS,
            Stage.ANALYZING: self.ANALYZE_TIMEOUT_SECONDS,
            Stage.SYNTHESIZING: self.SYNTHESIZE_TIMEOUT_SECONDS,
            Stage.FINALIZING: self.FINALIZE_TIMEOUT_SECONDS,
        }
        return timeouts[stage]

    def validate_models(self) -> list[str]:
        """Return the configuration problems that prevent model calls."""
        errors = []
        if not self.GEMINI_API_KEY:
            errors.append("GEMINI_API_KEY is required")
        if self.WHISPER_DEVICE not in {"auto", "cuda", "cpu"}:
            errors.append("WHISPER_DEVICE must be one of auto, cuda, cpu")
        return errors


@lru_cache
def get_settings() -> PipelineSettings:
    return PipelineSettings()
