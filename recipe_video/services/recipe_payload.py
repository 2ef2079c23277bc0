from __future__ import annotations

import json
import re
from typing import Any, Optional

from recipe_video.app.domain.models import RecipeDraft

UNTITLED_RECIPE = "Untitled recipe"
LEADING_INT_PATTERN = re.compile(r"\s*(\d+)")

# Model keys, with the snake_case variants some answers use.
FIELD_KEYS = {
    "title": ("title",),
    "description": ("description",),
    "ingredients": ("ingredients",),
    "instructions": ("instructions",),
    "cooking_time": ("cookingTime", "cooking_time"),
    "servings": ("servings",),
    "difficulty": ("difficulty",),
    "cuisine": ("cuisine",),
}


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse model output; raises ValueError unless it is a JSON object."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def clean_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = int(value)
    elif isinstance(value, str):
        match = LEADING_INT_PATTERN.match(value)
        if not match:
            return None
        number = int(match.group(1))
    else:
        return None
    return number if number > 0 else None


def clean_ingredients(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for entry in value:
        text = clean_str(entry)
        if text:
            items.append(text)
    return items


def _lookup(data: dict[str, Any], field_name: str) -> Any:
    for key in FIELD_KEYS[field_name]:
        if key in data:
            return data[key]
    return None


def extract_fields(data: dict[str, Any]) -> dict[str, Any]:
    """
    Coerce each recipe field of a model answer.

    Missing or unusable values come back as None (scalars) or an empty
    list (ingredients), so callers can tell "absent" from "present".
    """
    return {
        "title": clean_str(_lookup(data, "title")),
        "description": clean_str(_lookup(data, "description")),
        "ingredients": clean_ingredients(_lookup(data, "ingredients")),
        "instructions": clean_str(_lookup(data, "instructions")),
        "cooking_time": positive_int(_lookup(data, "cooking_time")),
        "servings": positive_int(_lookup(data, "servings")),
        "difficulty": clean_str(_lookup(data, "difficulty")),
        "cuisine": clean_str(_lookup(data, "cuisine")),
    }


def draft_from_payload(data: dict[str, Any]) -> RecipeDraft:
    fields = extract_fields(data)
    return RecipeDraft(
        title=fields["title"] or UNTITLED_RECIPE,
        description=fields["description"] or "",
        ingredients=fields["ingredients"],
        instructions=fields["instructions"] or "",
        cooking_time=fields["cooking_time"],
        servings=fields["servings"],
        difficulty=fields["difficulty"],
        cuisine=fields["cuisine"],
    )
