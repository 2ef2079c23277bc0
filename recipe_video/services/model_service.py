"""
Common capability interface for the model services.

Vision, speech and synthesis all follow the same request/response shape,
so the analyzers depend on ``ModelService`` and tests swap in fakes that
return canned payloads.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")


@dataclass(frozen=True)
class VisionRequest:
    frame_base64: str
    instruction: str
    user_prompt: str


@dataclass(frozen=True)
class SpeechRequest:
    audio_path: Path
    language: str


@dataclass(frozen=True)
class SpeechResponse:
    text: str
    language: str
    duration_sec: float


@dataclass(frozen=True)
class SynthesisRequest:
    draft: dict
    transcript: str
    instruction: str


class ModelService(ABC, Generic[RequestT, ResponseT]):
    @abstractmethod
    def invoke(self, request: RequestT) -> ResponseT:
        """
        Send one request to the model.

        Raises:
            ModelServiceError: transport or model failure
            RateLimitedError: the provider refused the call for quota reasons
        """
        pass


# Vision and synthesis services answer with the raw JSON text of the model.
VisionService = ModelService[VisionRequest, str]
SpeechService = ModelService[SpeechRequest, SpeechResponse]
SynthesisService = ModelService[SynthesisRequest, str]
