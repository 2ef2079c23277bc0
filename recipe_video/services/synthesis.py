from __future__ import annotations

import logging
from typing import Any

from recipe_video.app.domain.errors import SynthesisError
from recipe_video.app.domain.models import RecipeDraft, TranscriptResult

from .errors import ModelServiceError
from .model_service import SynthesisRequest, SynthesisService
from .recipe_payload import extract_fields, parse_json_object

logger = logging.getLogger(__name__)


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list)):
        return len(value) > 0
    return True


def merge_recipe(draft: RecipeDraft, merged: dict[str, Any]) -> RecipeDraft:
    """
    Combine the synthesis answer with the draft, field by field.

    Precedence is synthesis > draft > default: a field the model omitted,
    left empty or returned in an unusable shape keeps the draft's value.
    """
    fields = extract_fields(merged)

    def pick(name: str) -> Any:
        value = fields[name]
        return value if _is_present(value) else getattr(draft, name)

    return RecipeDraft(
        title=pick("title"),
        description=pick("description"),
        ingredients=list(pick("ingredients") or []),
        instructions=pick("instructions"),
        cooking_time=pick("cooking_time"),
        servings=pick("servings"),
        difficulty=pick("difficulty"),
        cuisine=pick("cuisine"),
    )


class RecipeSynthesizer:
    def __init__(self, service: SynthesisService, instruction: str) -> None:
        self.service = service
        self.instruction = instruction

    def synthesize(self, draft: RecipeDraft, transcript: TranscriptResult) -> RecipeDraft:
        if not transcript.text.strip():
            logger.info("synthesis.skipped reason=empty_transcript")
            return merge_recipe(draft, {})

        request = SynthesisRequest(
            draft=draft.to_payload(),
            transcript=transcript.text,
            instruction=self.instruction,
        )
        try:
            raw = self.service.invoke(request)
        except ModelServiceError as error:
            logger.warning("synthesis.fail error=%s", error)
            raise SynthesisError(f"Failed to enhance recipe: {error}") from error

        try:
            merged = parse_json_object(raw)
        except (TypeError, ValueError) as error:
            raise SynthesisError(f"Synthesis returned invalid JSON: {error}") from error

        recipe = merge_recipe(draft, merged)
        logger.info(
            "synthesis.ok title=%r ingredients=%d",
            recipe.title,
            len(recipe.ingredients),
        )
        return recipe
