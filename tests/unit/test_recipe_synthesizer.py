from __future__ import annotations

import json
import random

import pytest

from recipe_video.app.domain.errors import SynthesisError
from recipe_video.app.domain.models import RecipeDraft, TranscriptResult
from recipe_video.services.synthesis import RecipeSynthesizer, merge_recipe
from tests.unit.fakes import CannedSynthesisService

TRANSCRIPT = TranscriptResult(text="Use quatro ovos e asse por 45 minutos", language="pt")


def create_draft() -> RecipeDraft:
    return RecipeDraft(
        title="Bolo de cenoura",
        description="Bolo caseiro",
        ingredients=["3 cenouras", "3 ovos"],
        instructions="Bata tudo.",
        cooking_time=40,
        servings=8,
        difficulty="Easy",
        cuisine="Brasileira",
    )


class TestRecipeSynthesizer:
    def test_answer_fields_win(self) -> None:
        service = CannedSynthesisService(
            payload={"ingredients": ["3 cenouras", "4 ovos"], "cookingTime": 45}
        )
        recipe = RecipeSynthesizer(service, "merge").synthesize(create_draft(), TRANSCRIPT)

        assert recipe.ingredients == ["3 cenouras", "4 ovos"]
        assert recipe.cooking_time == 45
        assert recipe.title == "Bolo de cenoura"
        assert recipe.servings == 8

    def test_request_carries_draft_and_transcript(self) -> None:
        service = CannedSynthesisService(payload={})
        RecipeSynthesizer(service, "merge").synthesize(create_draft(), TRANSCRIPT)

        request = service.requests[0]
        assert request.transcript == TRANSCRIPT.text
        assert request.draft["title"] == "Bolo de cenoura"
        assert request.draft["cookingTime"] == 40
        assert request.instruction == "merge"

    def test_blank_transcript_skips_model(self) -> None:
        service = CannedSynthesisService(payload={"title": "Other"})
        draft = create_draft()

        recipe = RecipeSynthesizer(service, "").synthesize(draft, TranscriptResult(text="   ", language="pt"))

        assert service.requests == []
        assert recipe == draft

    @pytest.mark.parametrize("raw", ["{not json", "[]", '"text"'])
    def test_invalid_answer_raises(self, raw: str) -> None:
        with pytest.raises(SynthesisError):
            RecipeSynthesizer(CannedSynthesisService(raw=raw), "").synthesize(create_draft(), TRANSCRIPT)

    def test_service_failure_raises(self) -> None:
        service = CannedSynthesisService()
        service.should_fail = True
        with pytest.raises(SynthesisError) as exc_info:
            RecipeSynthesizer(service, "").synthesize(create_draft(), TRANSCRIPT)
        assert exc_info.value.retryable is True

    def test_null_ingredients_keep_draft_list(self) -> None:
        service = CannedSynthesisService(payload={"ingredients": None})
        recipe = RecipeSynthesizer(service, "").synthesize(create_draft(), TRANSCRIPT)
        assert recipe.ingredients == ["3 cenouras", "3 ovos"]


FIELD_SAMPLES = {
    "title": ["Pudim", "", None, 7],
    "description": ["Doce", "", None],
    "ingredients": [["leite", "ovos"], [], None, "leite"],
    "instructions": ["Misture.", "", None],
    "cookingTime": [50, "30 min", 0, None, "soon"],
    "servings": [6, -1, None, "4"],
    "difficulty": ["Medium", "", None],
    "cuisine": ["Portuguesa", None],
}

ATTRIBUTE_FOR = {
    "title": "title",
    "description": "description",
    "ingredients": "ingredients",
    "instructions": "instructions",
    "cookingTime": "cooking_time",
    "servings": "servings",
    "difficulty": "difficulty",
    "cuisine": "cuisine",
}


def expected_value(key: str, value: object, fallback: object) -> object:
    if key in ("cookingTime", "servings"):
        if isinstance(value, int) and value > 0:
            return value
        if isinstance(value, str) and value[:1].isdigit():
            return int(value.split()[0])
        return fallback
    if key == "ingredients":
        return value if isinstance(value, list) and value else fallback
    return value if isinstance(value, str) and value else fallback


class TestMergePrecedence:
    def test_randomized_answers(self) -> None:
        rng = random.Random(20240501)
        draft = create_draft()

        for _ in range(200):
            answer = {}
            for key, samples in FIELD_SAMPLES.items():
                if rng.random() < 0.7:
                    answer[key] = rng.choice(samples)

            merged = merge_recipe(draft, json.loads(json.dumps(answer)))

            assert isinstance(merged.ingredients, list)
            for key, attribute in ATTRIBUTE_FOR.items():
                fallback = getattr(draft, attribute)
                expected = expected_value(key, answer.get(key), fallback)
                assert getattr(merged, attribute) == expected, (key, answer)

    def test_empty_answer_keeps_draft(self) -> None:
        draft = create_draft()
        assert merge_recipe(draft, {}) == draft

    def test_draft_defaults_survive(self) -> None:
        draft = RecipeDraft(title="Untitled recipe")
        merged = merge_recipe(draft, {"title": None, "ingredients": "x"})
        assert merged.title == "Untitled recipe"
        assert merged.ingredients == []
        assert merged.cooking_time is None
