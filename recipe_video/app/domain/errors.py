from __future__ import annotations

from recipe_video.app.domain.models import Stage

MANUAL_UPLOAD_HINT = (
    "Download the video yourself and send it through the manual upload instead."
)


class PipelineError(Exception):
    stage: Stage = Stage.FAILED
    retryable: bool = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AcquisitionError(PipelineError):
    stage = Stage.ACQUIRING

    def __init__(self, message: str, suggest_upload: bool = True):
        if suggest_upload:
            message = f"{message} {MANUAL_UPLOAD_HINT}"
        super().__init__(message)
        self.suggest_upload = suggest_upload


class NormalizationError(PipelineError):
    stage = Stage.NORMALIZING
    retryable = False


class AnalysisError(PipelineError):
    stage = Stage.ANALYZING


class TranscriptionError(PipelineError):
    stage = Stage.ANALYZING


class SynthesisError(PipelineError):
    stage = Stage.SYNTHESIZING


class MediaStorageError(PipelineError):
    stage = Stage.FINALIZING

    def __init__(self, run_id: str, reason: str):
        super().__init__(f"Failed to store media for run {run_id}: {reason}")
        self.run_id = run_id
        self.reason = reason


class StageTimeoutError(PipelineError):
    def __init__(self, stage: Stage, timeout_seconds: float):
        super().__init__(f"Stage {stage.value} timed out after {timeout_seconds}s")
        self.stage = stage
        self.timeout_seconds = timeout_seconds


class RunCancelledError(PipelineError):
    retryable = False

    def __init__(self, stage: Stage):
        super().__init__(f"Run cancelled during {stage.value}")
        self.stage = stage
