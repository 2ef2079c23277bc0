from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path

import httpx
from google import genai
from google.genai import types
from google.genai.errors import APIError

from .errors import ModelServiceError, RateLimitedError, ServiceError
from .model_service import ModelService, SynthesisRequest, VisionRequest

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"
VISION_PROMPT = PROMPTS_DIR / "vision_system.txt"
SYNTHESIS_PROMPT = PROMPTS_DIR / "synthesis_system.txt"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiConfigurationError(ServiceError):
    pass


class GeminiPromptError(ServiceError):
    pass


def load_system_prompt(file_path: Path) -> str:
    try:
        return file_path.read_text(encoding="utf-8")
    except FileNotFoundError as not_found_error:
        raise GeminiPromptError(f"Prompt file not found: {file_path}") from not_found_error
    except OSError as io_error:
        raise GeminiPromptError(f"Unable to read prompt file: {io_error}") from io_error


class GeminiClient:
    def __init__(self, api_key: str, model_name: str = DEFAULT_MODEL) -> None:
        if not api_key:
            raise GeminiConfigurationError("Missing Google API key.")
        self.model_name = model_name
        self._client = genai.Client(api_key=api_key)

    def generate_json(
        self,
        contents: list,
        system_instruction: str,
        max_output_tokens: int = 1200,
    ) -> str:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json",
            max_output_tokens=max_output_tokens,
        )
        try:
            response = self._client.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=config,
            )
        except APIError as err:
            status_code = getattr(err, "code", None)
            if status_code == 429 or "RESOURCE_EXHAUSTED" in str(err):
                raise RateLimitedError(
                    "Gemini API limit reached. Try again in a few moments."
                ) from err
            raise ModelServiceError(f"Gemini request failed: {err}") from err
        except httpx.HTTPError as err:
            raise ModelServiceError(f"Gemini transport error: {err}") from err

        text = response.text
        if not text:
            raise ModelServiceError("Model response did not include text content.")
        return text


class GeminiVisionService(ModelService[VisionRequest, str]):
    def __init__(self, client: GeminiClient, max_output_tokens: int = 1000) -> None:
        self.client = client
        self.max_output_tokens = max_output_tokens

    def invoke(self, request: VisionRequest) -> str:
        try:
            image_bytes = base64.b64decode(request.frame_base64, validate=True)
        except (binascii.Error, ValueError) as error:
            raise ModelServiceError(f"Frame is not valid base64: {error}") from error

        contents = [
            types.Part.from_bytes(data=image_bytes, mime_type="image/jpeg"),
            request.user_prompt,
        ]
        return self.client.generate_json(contents, request.instruction, self.max_output_tokens)


class GeminiSynthesisService(ModelService[SynthesisRequest, str]):
    def __init__(self, client: GeminiClient, max_output_tokens: int = 1200) -> None:
        self.client = client
        self.max_output_tokens = max_output_tokens

    def invoke(self, request: SynthesisRequest) -> str:
        payload = (
            f"Visual analysis: {json.dumps(request.draft, ensure_ascii=False)}\n\n"
            f"Audio transcription: {request.transcript}\n\n"
            "Please combine both sources to create the most complete and accurate recipe possible."
        )
        return self.client.generate_json([payload], request.instruction, self.max_output_tokens)
