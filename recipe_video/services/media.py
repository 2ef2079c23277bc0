from __future__ import annotations

import base64
import logging
import threading
from pathlib import Path
from typing import Optional

from recipe_video.app.domain.errors import NormalizationError
from recipe_video.app.domain.models import MediaArtifactSet

from .errors import ProcessCancelledError, ProcessFailedError, ProcessTimeoutError
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

AUDIO_SAMPLE_RATE = 16000
THUMBNAIL_OFFSET = "00:00:02"
FRAME_OFFSET = "00:00:05"


class MediaNormalizer:
    """
    Turns a raw video into the artifacts the analyses need.

    Output names are derived from the run id, so concurrent runs never
    share a file. Either every artifact is returned or none is kept.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        thumbnail_offset: str = THUMBNAIL_OFFSET,
        frame_offset: str = FRAME_OFFSET,
        step_timeout: Optional[float] = None,
    ) -> None:
        self.runner = runner
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.thumbnail_offset = thumbnail_offset
        self.frame_offset = frame_offset
        self.step_timeout = step_timeout

    def normalize(
        self,
        raw_path: Path,
        run_dir: Path,
        run_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> MediaArtifactSet:
        run_dir.mkdir(parents=True, exist_ok=True)
        video_path = run_dir / f"{run_id}.mp4"
        audio_path = run_dir / f"{run_id}.wav"
        thumbnail_path = run_dir / f"{run_id}.jpg"
        frame_path = run_dir / f"{run_id}_frame.jpg"
        produced = [video_path, audio_path, thumbnail_path, frame_path]

        try:
            self._transcode(raw_path, video_path, cancel_event)
            self._extract_audio(video_path, audio_path, cancel_event)
            self._extract_frame(video_path, thumbnail_path, self.thumbnail_offset, cancel_event)
            duration = self.probe_duration(video_path, cancel_event)
            frame_base64 = self.extract_analysis_frame(video_path, frame_path, cancel_event)
        except ProcessCancelledError:
            self._discard(produced)
            raise
        except (ProcessFailedError, ProcessTimeoutError) as error:
            self._discard(produced)
            logger.warning("normalize.fail run=%s error=%s", run_id, error)
            raise NormalizationError(f"Video processing failed: {error}") from error
        except NormalizationError:
            self._discard(produced)
            raise

        logger.info("normalize.ok run=%s duration=%.1fs", run_id, duration)
        return MediaArtifactSet(
            video_path=video_path,
            audio_path=audio_path,
            thumbnail_path=thumbnail_path,
            frame_base64=frame_base64,
            duration_sec=duration,
        )

    def _ffmpeg(self, args: list[str], output: Path, cancel_event: Optional[threading.Event]) -> None:
        self.runner.run(
            [self.ffmpeg_bin, *args, "-y", str(output)],
            timeout=self.step_timeout,
            cancel_event=cancel_event,
        )
        if not output.is_file() or output.stat().st_size == 0:
            raise NormalizationError(f"ffmpeg produced no output: {output.name}")

    def _transcode(self, raw_path: Path, video_path: Path, cancel_event: Optional[threading.Event]) -> None:
        self._ffmpeg(
            [
                "-i", str(raw_path),
                "-c:v", "libx264",
                "-c:a", "aac",
                "-movflags", "+faststart",
            ],
            video_path,
            cancel_event,
        )

    def _extract_audio(self, video_path: Path, audio_path: Path, cancel_event: Optional[threading.Event]) -> None:
        self._ffmpeg(
            [
                "-i", str(video_path),
                "-vn",
                "-acodec", "pcm_s16le",
                "-ar", str(AUDIO_SAMPLE_RATE),
                "-ac", "1",
            ],
            audio_path,
            cancel_event,
        )

    def _extract_frame(
        self,
        video_path: Path,
        output: Path,
        offset: str,
        cancel_event: Optional[threading.Event],
    ) -> None:
        self._ffmpeg(
            [
                "-i", str(video_path),
                "-ss", offset,
                "-vframes", "1",
                "-q:v", "2",
            ],
            output,
            cancel_event,
        )

    def probe_duration(self, video_path: Path, cancel_event: Optional[threading.Event] = None) -> float:
        result = self.runner.run(
            [
                self.ffprobe_bin,
                "-v", "quiet",
                "-show_entries", "format=duration",
                "-of", "csv=p=0",
                str(video_path),
            ],
            timeout=self.step_timeout,
            cancel_event=cancel_event,
        )
        try:
            duration = float(result.stdout.strip())
        except ValueError as error:
            raise NormalizationError(f"Unreadable duration: {result.stdout.strip()!r}") from error
        if duration <= 0:
            raise NormalizationError("Video has zero duration")
        return duration

    def extract_analysis_frame(
        self,
        video_path: Path,
        frame_path: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Grab one frame for the vision model and return it base64-encoded."""
        try:
            self._extract_frame(video_path, frame_path, self.frame_offset, cancel_event)
            return base64.b64encode(frame_path.read_bytes()).decode("ascii")
        finally:
            frame_path.unlink(missing_ok=True)

    @staticmethod
    def _discard(paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as os_error:
                logger.warning("Failed to remove artifact %s: %s", path, os_error)
