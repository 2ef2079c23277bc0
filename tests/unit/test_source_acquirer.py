from __future__ import annotations

from pathlib import Path

import pytest

from recipe_video.app.domain.errors import MANUAL_UPLOAD_HINT, AcquisitionError
from recipe_video.app.domain.models import RemoteURL, Stage, UploadHandle
from recipe_video.services.fetcher import SourceAcquirer
from tests.unit.fakes import FakeRunner, write_upload

RUN_ID = "run0001"
YOUTUBE_URL = "https://www.youtube.com/shorts/abcdefghijk"


def create_acquirer(runner: FakeRunner) -> SourceAcquirer:
    return SourceAcquirer(runner, download_command=["yt-dlp"], download_format="best[height<=720]")


class TestUploadSource:
    def test_returns_upload_path_without_running_tools(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        upload = write_upload(tmp_path)

        result = create_acquirer(runner).acquire(UploadHandle(path=upload), tmp_path / RUN_ID, RUN_ID)

        assert result == upload
        assert runner.calls == []

    def test_missing_upload(self, tmp_path: Path) -> None:
        with pytest.raises(AcquisitionError) as exc_info:
            create_acquirer(FakeRunner()).acquire(
                UploadHandle(path=tmp_path / "gone.mp4"), tmp_path / RUN_ID, RUN_ID
            )
        assert exc_info.value.suggest_upload is False
        assert exc_info.value.stage == Stage.ACQUIRING

    def test_empty_upload(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty.mp4"
        empty.write_bytes(b"")
        with pytest.raises(AcquisitionError, match="empty"):
            create_acquirer(FakeRunner()).acquire(UploadHandle(path=empty), tmp_path / RUN_ID, RUN_ID)


class TestRemoteSource:
    def test_download_lands_in_run_dir(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        run_dir = tmp_path / RUN_ID

        result = create_acquirer(runner).acquire(RemoteURL(YOUTUBE_URL), run_dir, RUN_ID)

        assert result == run_dir / f"{RUN_ID}_source.mp4"
        assert result.read_bytes() == b"downloaded-video"
        command = runner.calls[0]
        assert command[0] == "yt-dlp"
        assert command[-1] == YOUTUBE_URL
        assert "--no-playlist" in command
        assert command[command.index("--format") + 1] == "best[height<=720]"
        assert command[command.index("--output") + 1].startswith(str(run_dir))

    def test_failed_download_leaves_no_files(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        runner.download_exit_code = 1
        runner.download_writes_partial = True
        run_dir = tmp_path / RUN_ID

        with pytest.raises(AcquisitionError) as exc_info:
            create_acquirer(runner).acquire(RemoteURL(YOUTUBE_URL), run_dir, RUN_ID)

        assert MANUAL_UPLOAD_HINT in str(exc_info.value)
        assert exc_info.value.retryable is True
        assert list(run_dir.iterdir()) == []

    def test_instagram_login_message(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        runner.download_exit_code = 1

        with pytest.raises(AcquisitionError, match="Instagram requires login"):
            create_acquirer(runner).acquire(
                RemoteURL("https://www.instagram.com/reel/C1a2b3c4d5/"), tmp_path / RUN_ID, RUN_ID
            )

    def test_partial_file_is_not_returned(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        runner.download_writes_partial = True
        run_dir = tmp_path / RUN_ID

        result = create_acquirer(runner).acquire(RemoteURL(YOUTUBE_URL), run_dir, RUN_ID)

        assert result.suffix == ".mp4"

    def test_ambiguous_output_is_rejected(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        runner.download_outputs = 2
        run_dir = tmp_path / RUN_ID

        with pytest.raises(AcquisitionError, match="ambiguous"):
            create_acquirer(runner).acquire(RemoteURL(YOUTUBE_URL), run_dir, RUN_ID)
        assert list(run_dir.iterdir()) == []

    def test_no_output_is_rejected(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        runner.download_outputs = 0

        with pytest.raises(AcquisitionError, match="no file produced"):
            create_acquirer(runner).acquire(RemoteURL(YOUTUBE_URL), tmp_path / RUN_ID, RUN_ID)

    @pytest.mark.parametrize("url", ["ftp://example.com/video.mp4", "not a url", "https://"])
    def test_invalid_url_never_runs_downloader(self, tmp_path: Path, url: str) -> None:
        runner = FakeRunner()
        with pytest.raises(AcquisitionError, match="Invalid video URL"):
            create_acquirer(runner).acquire(RemoteURL(url), tmp_path / RUN_ID, RUN_ID)
        assert runner.calls == []
