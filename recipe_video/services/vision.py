from __future__ import annotations

import logging
from typing import Optional

from recipe_video.app.domain.errors import AnalysisError
from recipe_video.app.domain.models import RecipeDraft

from .errors import ModelServiceError
from .model_service import VisionRequest, VisionService
from .recipe_payload import draft_from_payload, parse_json_object

logger = logging.getLogger(__name__)

VISION_USER_PROMPT = (
    "Analyze this cooking video frame and extract the complete recipe information "
    "including all visible ingredients, cooking techniques, and preparation steps."
)


class VisualAnalyzer:
    """Builds a recipe draft from one representative frame."""

    def __init__(self, service: VisionService, instruction: str) -> None:
        self.service = service
        self.instruction = instruction

    def analyze_frame(self, frame_base64: str) -> RecipeDraft:
        if not frame_base64:
            raise AnalysisError("No frame to analyze")

        request = VisionRequest(
            frame_base64=frame_base64,
            instruction=self.instruction,
            user_prompt=VISION_USER_PROMPT,
        )
        try:
            raw = self.service.invoke(request)
        except ModelServiceError as error:
            logger.warning("vision.fail error=%s", error)
            raise AnalysisError(f"Failed to analyze recipe video: {error}") from error

        data = self._parse(raw)
        draft = draft_from_payload(data)
        logger.info(
            "vision.ok title=%r ingredients=%d",
            draft.title,
            len(draft.ingredients),
        )
        return draft

    @staticmethod
    def _parse(raw: Optional[str]) -> dict:
        if not raw:
            return {}
        try:
            return parse_json_object(raw)
        except ValueError:
            logger.warning("vision.unparsable_response chars=%d", len(raw))
            return {}
