# recipe_video/app/deps.py
from __future__ import annotations

from fastapi import HTTPException, Request, status

from recipe_video.app.config import PipelineSettings, get_settings
from recipe_video.app.services.pipeline import PipelineOrchestrator


def get_pipeline_settings() -> PipelineSettings:
    return get_settings()


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    """The orchestrator is built at startup and lives on ``app.state``."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ingestion pipeline unavailable",
        )
    return orchestrator
