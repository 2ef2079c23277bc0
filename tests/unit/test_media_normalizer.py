from __future__ import annotations

import base64
import threading
from pathlib import Path

import pytest

from recipe_video.app.domain.errors import NormalizationError
from recipe_video.services.errors import ProcessCancelledError
from recipe_video.services.media import MediaNormalizer
from tests.unit.fakes import FAKE_JPEG, FakeRunner, write_upload

RUN_ID = "run0001"


def normalize(tmp_path: Path, runner: FakeRunner):
    run_dir = tmp_path / RUN_ID
    raw = write_upload(tmp_path)
    return MediaNormalizer(runner).normalize(raw, run_dir, RUN_ID), run_dir


def find_call(runner: FakeRunner, output_suffix: str) -> list[str]:
    return next(call for call in runner.calls if call[-1].endswith(output_suffix))


class TestNormalize:
    def test_produces_artifact_set(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        artifacts, run_dir = normalize(tmp_path, runner)

        assert artifacts.video_path == run_dir / f"{RUN_ID}.mp4"
        assert artifacts.audio_path == run_dir / f"{RUN_ID}.wav"
        assert artifacts.thumbnail_path == run_dir / f"{RUN_ID}.jpg"
        assert artifacts.duration_sec == 30.5
        assert base64.b64decode(artifacts.frame_base64) == FAKE_JPEG
        for path in artifacts.paths():
            assert path.is_file()

    def test_analysis_frame_is_not_left_on_disk(self, tmp_path: Path) -> None:
        _, run_dir = normalize(tmp_path, FakeRunner())
        assert not (run_dir / f"{RUN_ID}_frame.jpg").exists()

    def test_transcode_arguments(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        normalize(tmp_path, runner)

        command = find_call(runner, ".mp4")
        assert command[0] == "ffmpeg"
        assert "libx264" in command
        assert "aac" in command
        assert "+faststart" in command

    def test_audio_is_mono_16khz_pcm(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        normalize(tmp_path, runner)

        command = find_call(runner, ".wav")
        assert "-vn" in command
        assert command[command.index("-acodec") + 1] == "pcm_s16le"
        assert command[command.index("-ar") + 1] == "16000"
        assert command[command.index("-ac") + 1] == "1"

    def test_frame_offsets(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        normalize(tmp_path, runner)

        thumbnail = find_call(runner, f"{RUN_ID}.jpg")
        frame = find_call(runner, "_frame.jpg")
        assert thumbnail[thumbnail.index("-ss") + 1] == "00:00:02"
        assert frame[frame.index("-ss") + 1] == "00:00:05"

    def test_duration_probe(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        normalize(tmp_path, runner)

        probe = next(call for call in runner.calls if call[0] == "ffprobe")
        assert "format=duration" in probe
        assert "csv=p=0" in probe


class TestNormalizeFailures:
    @pytest.mark.parametrize("failing_step", ["libx264", "pcm_s16le", "00:00:02", "00:00:05"])
    def test_failed_step_discards_every_artifact(self, tmp_path: Path, failing_step: str) -> None:
        runner = FakeRunner()
        runner.fail_on = failing_step

        with pytest.raises(NormalizationError) as exc_info:
            normalize(tmp_path, runner)

        assert exc_info.value.retryable is False
        assert list((tmp_path / RUN_ID).iterdir()) == []

    def test_missing_output_is_a_failure(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        runner.skip_output_on = "pcm_s16le"

        with pytest.raises(NormalizationError, match="no output"):
            normalize(tmp_path, runner)
        assert list((tmp_path / RUN_ID).iterdir()) == []

    @pytest.mark.parametrize("duration", ["0", "0.0", "N/A", ""])
    def test_unusable_duration(self, tmp_path: Path, duration: str) -> None:
        runner = FakeRunner()
        runner.duration = duration

        with pytest.raises(NormalizationError):
            normalize(tmp_path, runner)
        assert list((tmp_path / RUN_ID).iterdir()) == []

    def test_cancellation_discards_partial_output(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        runner.block_on = "pcm_s16le"
        run_dir = tmp_path / RUN_ID
        raw = write_upload(tmp_path)
        normalizer = MediaNormalizer(runner)

        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ProcessCancelledError):
            normalizer.normalize(raw, run_dir, RUN_ID, cancel_event=cancel)
        assert list(run_dir.iterdir()) == []
        assert raw.exists()
