from __future__ import annotations

import base64
from types import SimpleNamespace

import pytest
from google.genai.errors import APIError

from recipe_video.services.errors import ModelServiceError, RateLimitedError
from recipe_video.services.gemini_client import (
    SYNTHESIS_PROMPT,
    VISION_PROMPT,
    GeminiClient,
    GeminiConfigurationError,
    GeminiPromptError,
    GeminiSynthesisService,
    GeminiVisionService,
    load_system_prompt,
)
from recipe_video.services.model_service import SynthesisRequest, VisionRequest
from tests.unit.fakes import FAKE_JPEG


class GenerateJsonStub:
    def __init__(self, answer: str = "{}") -> None:
        self.answer = answer
        self.calls: list[tuple] = []

    def generate_json(self, contents: list, system_instruction: str, max_output_tokens: int = 1200) -> str:
        self.calls.append((contents, system_instruction, max_output_tokens))
        return self.answer


class ModelsStub:
    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error

    def generate_content(self, model: str, contents: list, config: object) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def client_with(models: ModelsStub) -> GeminiClient:
    client = GeminiClient(api_key="test-key")
    client._client = SimpleNamespace(models=models)
    return client


class TestPrompts:
    def test_packaged_prompts_load(self) -> None:
        assert "recipe" in load_system_prompt(VISION_PROMPT).lower()
        assert "recipe" in load_system_prompt(SYNTHESIS_PROMPT).lower()

    def test_missing_prompt(self, tmp_path) -> None:
        with pytest.raises(GeminiPromptError):
            load_system_prompt(tmp_path / "missing.txt")


class TestGeminiClient:
    def test_requires_api_key(self) -> None:
        with pytest.raises(GeminiConfigurationError):
            GeminiClient(api_key="")

    def test_returns_text(self) -> None:
        client = client_with(ModelsStub(text='{"title": "Pudim"}'))
        assert client.generate_json(["hi"], "system") == '{"title": "Pudim"}'

    def test_empty_text(self) -> None:
        with pytest.raises(ModelServiceError):
            client_with(ModelsStub(text="")).generate_json(["hi"], "system")

    def test_quota_errors_are_rate_limited(self) -> None:
        error = APIError(429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}})
        with pytest.raises(RateLimitedError):
            client_with(ModelsStub(error=error)).generate_json(["hi"], "system")

    def test_other_api_errors(self) -> None:
        error = APIError(500, {"error": {"code": 500, "message": "boom", "status": "INTERNAL"}})
        with pytest.raises(ModelServiceError) as exc_info:
            client_with(ModelsStub(error=error)).generate_json(["hi"], "system")
        assert not isinstance(exc_info.value, RateLimitedError)


class TestGeminiVisionService:
    def test_sends_frame_and_prompt(self) -> None:
        stub = GenerateJsonStub('{"title": "Bolo"}')
        request = VisionRequest(
            frame_base64=base64.b64encode(FAKE_JPEG).decode("ascii"),
            instruction="be a chef",
            user_prompt="what is cooking?",
        )

        answer = GeminiVisionService(stub).invoke(request)

        assert answer == '{"title": "Bolo"}'
        contents, instruction, _ = stub.calls[0]
        assert contents[1] == "what is cooking?"
        assert instruction == "be a chef"

    def test_invalid_frame(self) -> None:
        request = VisionRequest(frame_base64="***", instruction="", user_prompt="")
        with pytest.raises(ModelServiceError):
            GeminiVisionService(GenerateJsonStub()).invoke(request)


class TestGeminiSynthesisService:
    def test_prompt_combines_sources(self) -> None:
        stub = GenerateJsonStub()
        request = SynthesisRequest(
            draft={"title": "Bolo de cenoura", "ingredients": ["cenoura"]},
            transcript="use tres ovos",
            instruction="merge",
        )

        GeminiSynthesisService(stub).invoke(request)

        contents, instruction, _ = stub.calls[0]
        assert "Visual analysis:" in contents[0]
        assert "Bolo de cenoura" in contents[0]
        assert "Audio transcription: use tres ovos" in contents[0]
        assert instruction == "merge"
