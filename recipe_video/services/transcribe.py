from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from recipe_video.app.domain.errors import TranscriptionError
from recipe_video.app.domain.models import TranscriptResult

from .errors import ModelServiceError
from .model_service import ModelService, SpeechRequest, SpeechResponse, SpeechService

if TYPE_CHECKING:  # pragma: no cover - apenas para type-checkers
    from faster_whisper import WhisperModel

logger = logging.getLogger(__name__)


def detect_device(preference: str = "auto") -> tuple[str, str]:
    """
    Pick the device and compute_type for faster-whisper.

    Returns:
        Tuple (device, compute_type): "float16" on GPU, "int8" on CPU
    """
    if preference == "cuda":
        return "cuda", "float16"
    if preference == "cpu":
        return "cpu", "int8"

    try:
        import ctranslate2

        if "float16" in ctranslate2.get_supported_compute_types("cuda"):
            logger.info("CUDA detected via ctranslate2, using GPU with float16")
            return "cuda", "float16"
    except (ImportError, RuntimeError, ValueError) as exc:
        logger.debug("Error detecting CUDA via ctranslate2: %s", exc)

    logger.info("GPU not available, using CPU with int8 (quantized)")
    return "cpu", "int8"


class WhisperSpeechService(ModelService[SpeechRequest, SpeechResponse]):
    """Speech-to-text with faster-whisper, loaded on first use."""

    def __init__(self, model_name: str = "medium", device: str = "auto", beam_size: int = 5) -> None:
        self.model_name = model_name
        self.device_preference = device
        self.beam_size = beam_size
        self._model: Optional["WhisperModel"] = None
        self._lock = threading.Lock()

    def _get_model(self) -> "WhisperModel":
        with self._lock:
            if self._model is not None:
                return self._model

            try:
                from faster_whisper import WhisperModel
            except ImportError as exc:
                raise ModelServiceError("faster-whisper is not installed") from exc

            device, compute_type = detect_device(self.device_preference)
            logger.info(
                "Initializing faster-whisper: model=%s, device=%s, compute_type=%s",
                self.model_name,
                device,
                compute_type,
            )
            try:
                self._model = WhisperModel(
                    self.model_name,
                    device=device,
                    compute_type=compute_type,
                    num_workers=2,
                )
            except (RuntimeError, ValueError, OSError) as exc:
                raise ModelServiceError(f"Failed to initialize faster-whisper: {exc}") from exc
            return self._model

    def invoke(self, request: SpeechRequest) -> SpeechResponse:
        model = self._get_model()
        try:
            segments, info = model.transcribe(
                str(request.audio_path),
                language=request.language,
                # VAD - skip silences
                vad_filter=True,
                vad_parameters=dict(
                    min_silence_duration_ms=500,
                    speech_pad_ms=200,
                ),
                beam_size=self.beam_size,
                condition_on_previous_text=False,
                word_timestamps=False,
            )
            parts = [seg.text.strip() for seg in segments if seg.text.strip()]
        except (RuntimeError, ValueError, OSError) as exc:
            raise ModelServiceError(f"Transcription failed: {exc}") from exc

        return SpeechResponse(
            text=" ".join(parts).strip(),
            language=getattr(info, "language", None) or request.language,
            duration_sec=float(getattr(info, "duration", 0.0) or 0.0),
        )


class AudioTranscriber:
    def __init__(self, service: SpeechService, language: str = "pt") -> None:
        self.service = service
        self.language = language

    def transcribe(self, audio_path: Path) -> TranscriptResult:
        """
        Transcribe the extracted audio track.

        Silence is a valid outcome and yields empty text.

        Raises:
            TranscriptionError: missing audio or speech service failure
        """
        if not Path(audio_path).is_file():
            raise TranscriptionError(f"Audio file not found: {audio_path}")

        try:
            response = self.service.invoke(SpeechRequest(audio_path=Path(audio_path), language=self.language))
        except ModelServiceError as error:
            logger.warning("transcribe.fail path=%s error=%s", audio_path, error)
            raise TranscriptionError(f"Failed to transcribe audio: {error}") from error

        text = (response.text or "").strip()
        logger.info(
            "transcribe.ok chars=%d language=%s duration=%.1fs",
            len(text),
            response.language,
            response.duration_sec,
        )
        return TranscriptResult(
            text=text,
            language=response.language or self.language,
            duration_sec=response.duration_sec,
        )
