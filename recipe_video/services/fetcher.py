from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import urlparse

from recipe_video.app.domain.errors import AcquisitionError
from recipe_video.app.domain.models import RemoteURL, UploadHandle, VideoSource

from .errors import ProcessCancelledError, ProcessFailedError, ProcessTimeoutError
from .ids import detect_platform
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = "_source"
PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")
DEFAULT_DOWNLOAD_FORMAT = "best[height<=720]"


def _validate_remote_url(url: str) -> None:
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise AcquisitionError(f"Invalid video URL: {url!r}.")


def _is_partial(path: Path) -> bool:
    return path.name.endswith(PARTIAL_SUFFIXES)


def _failure_message(url: str, reason: str) -> str:
    platform = detect_platform(url)
    if platform == "instagram":
        return "Instagram requires login to download videos."
    return f"Could not download the video ({reason})."


class SourceAcquirer:
    """Gets the raw video for a run, from an upload or through the download tool."""

    def __init__(
        self,
        runner: ProcessRunner,
        download_command: Sequence[str],
        download_format: str = DEFAULT_DOWNLOAD_FORMAT,
        timeout: Optional[float] = None,
    ) -> None:
        self.runner = runner
        self.download_command = list(download_command)
        self.download_format = download_format
        self.timeout = timeout

    def acquire(
        self,
        source: VideoSource,
        run_dir: Path,
        run_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        if isinstance(source, UploadHandle):
            return self._validate_upload(source)
        if isinstance(source, RemoteURL):
            return self._download(source.url, run_dir, run_id, cancel_event)
        raise AcquisitionError(f"Unsupported source: {type(source).__name__}.", suggest_upload=False)

    def _validate_upload(self, upload: UploadHandle) -> Path:
        path = Path(upload.path)
        if not path.is_file():
            raise AcquisitionError(f"Uploaded file not found: {path}.", suggest_upload=False)
        if path.stat().st_size == 0:
            raise AcquisitionError("Uploaded file is empty.", suggest_upload=False)
        return path

    def _download(
        self,
        url: str,
        run_dir: Path,
        run_id: str,
        cancel_event: Optional[threading.Event],
    ) -> Path:
        _validate_remote_url(url)
        run_dir.mkdir(parents=True, exist_ok=True)
        prefix = f"{run_id}{SOURCE_SUFFIX}"
        output_template = run_dir / f"{prefix}.%(ext)s"

        args = [
            *self.download_command,
            "--output", str(output_template),
            "--format", self.download_format,
            "--no-playlist",
            url,
        ]
        logger.info("acquire.download run=%s url=%s", run_id, url)

        try:
            self.runner.run(args, timeout=self.timeout, cancel_event=cancel_event)
        except ProcessFailedError as error:
            self._remove_outputs(run_dir, prefix)
            logger.warning("acquire.fail run=%s code=%s", run_id, error.returncode)
            raise AcquisitionError(_failure_message(url, f"exit code {error.returncode}")) from error
        except ProcessTimeoutError as error:
            self._remove_outputs(run_dir, prefix)
            raise AcquisitionError(_failure_message(url, "download timed out")) from error
        except ProcessCancelledError:
            self._remove_outputs(run_dir, prefix)
            raise

        return self._locate_download(url, run_dir, prefix)

    def _locate_download(self, url: str, run_dir: Path, prefix: str) -> Path:
        candidates = sorted(
            path
            for path in run_dir.glob(f"{prefix}*")
            if path.is_file() and not _is_partial(path)
        )
        if len(candidates) != 1:
            self._remove_outputs(run_dir, prefix)
            reason = "no file produced" if not candidates else "ambiguous output"
            raise AcquisitionError(_failure_message(url, reason))

        downloaded = candidates[0]
        if downloaded.stat().st_size == 0:
            self._remove_outputs(run_dir, prefix)
            raise AcquisitionError(_failure_message(url, "empty file"))
        return downloaded

    @staticmethod
    def _remove_outputs(run_dir: Path, prefix: str) -> None:
        if not run_dir.exists():
            return
        for path in run_dir.glob(f"{prefix}*"):
            try:
                path.unlink()
            except OSError as os_error:
                logger.warning("Failed to remove partial download %s: %s", path, os_error)
