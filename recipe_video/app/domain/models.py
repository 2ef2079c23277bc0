# recipe_video/app/domain/models.py
"""
Domain models for the video ingestion pipeline.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class Stage(str, Enum):
    """Stage marker of an ingestion run."""
    ACQUIRING = "ACQUIRING"
    NORMALIZING = "NORMALIZING"
    ANALYZING = "ANALYZING"
    SYNTHESIZING = "SYNTHESIZING"
    FINALIZING = "FINALIZING"
    DONE = "DONE"
    FAILED = "FAILED"


class SourceKind(str, Enum):
    UPLOAD = "upload"
    REMOTE = "remote"


@dataclass(frozen=True)
class UploadHandle:
    """A video the caller already wrote to disk."""
    path: Path
    filename: Optional[str] = None

    @property
    def kind(self) -> SourceKind:
        return SourceKind.UPLOAD


@dataclass(frozen=True)
class RemoteURL:
    url: str

    @property
    def kind(self) -> SourceKind:
        return SourceKind.REMOTE


VideoSource = Union[UploadHandle, RemoteURL]


@dataclass
class MediaArtifactSet:
    """Artifacts produced by normalization, all under the run directory."""
    video_path: Path
    audio_path: Path
    thumbnail_path: Path
    frame_base64: str
    duration_sec: float

    def paths(self) -> list[Path]:
        return [self.video_path, self.audio_path, self.thumbnail_path]


@dataclass
class RecipeDraft:
    """Best-effort recipe. Any field may hold its default."""
    title: str
    description: str = ""
    ingredients: list[str] = field(default_factory=list)
    instructions: str = ""
    cooking_time: Optional[int] = None  # minutes
    servings: Optional[int] = None
    difficulty: Optional[str] = None
    cuisine: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "ingredients": list(self.ingredients),
            "instructions": self.instructions,
            "cookingTime": self.cooking_time,
            "servings": self.servings,
            "difficulty": self.difficulty,
            "cuisine": self.cuisine,
        }


@dataclass
class TranscriptResult:
    """Spoken audio as text. Empty text means no speech, not a failure."""
    text: str
    language: str
    duration_sec: float = 0.0


@dataclass
class SynthesizedRecipe:
    """Final record handed to the persistence layer."""
    title: str
    description: str
    ingredients: list[str]
    instructions: str
    cooking_time: Optional[int]
    servings: Optional[int]
    difficulty: Optional[str]
    cuisine: Optional[str]

    # Provenance
    source_kind: SourceKind
    source_url: Optional[str]
    platform: Optional[str]
    transcript: str
    transcript_language: Optional[str]
    ai_processed: bool

    # Permanent media handed off by the pipeline
    video_path: Path
    thumbnail_path: Path
    duration_sec: float
    run_id: str

    @classmethod
    def from_parts(
        cls,
        recipe: RecipeDraft,
        transcript: TranscriptResult,
        source: VideoSource,
        platform: Optional[str],
        video_path: Path,
        thumbnail_path: Path,
        duration_sec: float,
        run_id: str,
    ) -> "SynthesizedRecipe":
        return cls(
            title=recipe.title,
            description=recipe.description,
            ingredients=list(recipe.ingredients),
            instructions=recipe.instructions,
            cooking_time=recipe.cooking_time,
            servings=recipe.servings,
            difficulty=recipe.difficulty,
            cuisine=recipe.cuisine,
            source_kind=source.kind,
            source_url=source.url if isinstance(source, RemoteURL) else None,
            platform=platform,
            transcript=transcript.text,
            transcript_language=transcript.language,
            ai_processed=True,
            video_path=video_path,
            thumbnail_path=thumbnail_path,
            duration_sec=duration_sec,
            run_id=run_id,
        )


@dataclass
class IngestionRun:
    """
    One pipeline execution.
    Owned by the orchestrator; its directory is removed once the run is terminal.
    """
    run_id: str
    run_dir: Path
    source: VideoSource
    stage: Stage = Stage.ACQUIRING
    cancel_event: threading.Event = field(default_factory=threading.Event)

    # Terminal outcome
    result: Optional[SynthesizedRecipe] = None
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None
    cleaned_up: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.stage in (Stage.DONE, Stage.FAILED)

    def succeed(self, recipe: SynthesizedRecipe) -> None:
        self.result = recipe
        self.stage = Stage.DONE

    def fail(self, stage: Stage, error: Exception) -> None:
        self.failed_stage = stage
        self.error = error
        self.stage = Stage.FAILED
