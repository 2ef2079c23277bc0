from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from recipe_video.app.domain.models import SynthesizedRecipe


class RecipeResponse(BaseModel):
    runId: str
    title: str
    description: Optional[str] = None
    ingredients: list[str] = Field(default_factory=list)
    instructions: Optional[str] = None
    cookingTime: Optional[int] = None
    servings: Optional[int] = None
    difficulty: Optional[str] = None
    cuisine: Optional[str] = None
    source: Literal["upload", "remote"]
    sourceUrl: Optional[str] = None
    platform: Optional[str] = None
    videoPath: str
    thumbnailPath: str
    durationSeconds: float
    transcription: str = ""
    transcriptionLanguage: Optional[str] = None
    aiProcessed: bool = True

    @classmethod
    def from_recipe(cls, recipe: SynthesizedRecipe) -> "RecipeResponse":
        return cls(
            runId=recipe.run_id,
            title=recipe.title,
            description=recipe.description or None,
            ingredients=recipe.ingredients,
            instructions=recipe.instructions or None,
            cookingTime=recipe.cooking_time,
            servings=recipe.servings,
            difficulty=recipe.difficulty,
            cuisine=recipe.cuisine,
            source=recipe.source_kind.value,
            sourceUrl=recipe.source_url,
            platform=recipe.platform,
            videoPath=str(recipe.video_path),
            thumbnailPath=str(recipe.thumbnail_path),
            durationSeconds=recipe.duration_sec,
            transcription=recipe.transcript,
            transcriptionLanguage=recipe.transcript_language,
            aiProcessed=recipe.ai_processed,
        )


class IngestResponse(BaseModel):
    recipe: RecipeResponse
    warnings: Optional[list[str]] = None


class ImportRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)


class PipelineErrorDetail(BaseModel):
    stage: str
    message: str
    retryable: bool
