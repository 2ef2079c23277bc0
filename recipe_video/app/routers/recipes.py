# recipe_video/app/routers/recipes.py
from __future__ import annotations

import dataclasses
import logging
import os
import re
import time
from pathlib import Path
from typing import BinaryIO, List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

from recipe_video.app.config import PipelineSettings
from recipe_video.app.deps import get_orchestrator, get_pipeline_settings
from recipe_video.app.domain.errors import (
    AcquisitionError,
    MediaStorageError,
    NormalizationError,
    PipelineError,
    StageTimeoutError,
)
from recipe_video.app.domain.models import RemoteURL, SynthesizedRecipe, UploadHandle, VideoSource
from recipe_video.app.schemas.ingest import (
    ImportRequest,
    IngestResponse,
    PipelineErrorDetail,
    RecipeResponse,
)
from recipe_video.app.services.pipeline import PipelineOrchestrator
from recipe_video.services.recipe_payload import UNTITLED_RECIPE, clean_str

log = logging.getLogger("recipes")
router = APIRouter(prefix="/recipes", tags=["recipes"])

COPY_CHUNK_BYTES = 1024 * 1024


class UploadTooLargeError(Exception):
    pass


def _sanitize_filename(filename: str) -> str:
    filename = os.path.basename(filename)
    filename = re.sub(r"[^a-zA-Z0-9._-]", "_", filename)
    if len(filename) > 100:
        name, ext = os.path.splitext(filename)
        filename = name[:95] + ext
    return filename


def _save_upload(stream: BinaryIO, target: Path, max_bytes: int) -> int:
    target.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with target.open("wb") as out:
        while True:
            chunk = stream.read(COPY_CHUNK_BYTES)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                raise UploadTooLargeError()
            out.write(chunk)
    return written


def _status_for(error: PipelineError) -> int:
    if isinstance(error, StageTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(error, (AcquisitionError, NormalizationError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, MediaStorageError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_502_BAD_GATEWAY


def _apply_overrides(
    recipe: SynthesizedRecipe,
    title: Optional[str],
    description: Optional[str],
) -> SynthesizedRecipe:
    return dataclasses.replace(
        recipe,
        title=clean_str(title) or recipe.title,
        description=clean_str(description) or recipe.description,
    )


def _collect_warnings(recipe: SynthesizedRecipe) -> List[str]:
    warnings: List[str] = []
    if recipe.title == UNTITLED_RECIPE:
        warnings.append("AI did not provide a title.")
    if not recipe.ingredients:
        warnings.append("AI did not identify any ingredients.")
    if not recipe.instructions:
        warnings.append("AI did not identify preparation steps.")
    if not recipe.transcript:
        warnings.append("No speech detected in the video audio.")
    return warnings


async def _run_pipeline(
    orchestrator: PipelineOrchestrator,
    source: VideoSource,
    title: Optional[str],
    description: Optional[str],
) -> IngestResponse:
    t0 = time.time()
    handle = orchestrator.submit(source)
    log.info("ingest.start run=%s source=%s", handle.run_id, source.kind.value)
    try:
        recipe = await orchestrator.wait(handle)
    except PipelineError as exc:
        log.warning(
            "ingest.fail run=%s stage=%s dt=%.2fs",
            handle.run_id,
            exc.stage.value,
            time.time() - t0,
        )
        detail = PipelineErrorDetail(stage=exc.stage.value, message=exc.message, retryable=exc.retryable)
        raise HTTPException(status_code=_status_for(exc), detail=detail.model_dump()) from exc

    recipe = _apply_overrides(recipe, title, description)
    log.info("ingest.ok run=%s dt=%.2fs", handle.run_id, time.time() - t0)
    warnings = _collect_warnings(recipe)
    return IngestResponse(
        recipe=RecipeResponse.from_recipe(recipe),
        warnings=warnings or None,
    )


@router.post("/upload", response_model=IngestResponse)
async def upload_recipe(
    video: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    settings: PipelineSettings = Depends(get_pipeline_settings),
) -> IngestResponse:
    if not (video.content_type or "").startswith("video/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only video files are allowed")

    safe_name = _sanitize_filename(video.filename or "upload.mp4")
    raw_path = Path(settings.UPLOAD_DIR) / f"{uuid4().hex}_{safe_name}"
    try:
        try:
            await run_in_threadpool(_save_upload, video.file, raw_path, settings.MAX_UPLOAD_BYTES)
        except UploadTooLargeError:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File too large. Maximum size: {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
            )
        source = UploadHandle(path=raw_path, filename=video.filename)
        return await _run_pipeline(orchestrator, source, title, description)
    finally:
        raw_path.unlink(missing_ok=True)


@router.post("/import", response_model=IngestResponse)
async def import_recipe(
    body: ImportRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> IngestResponse:
    return await _run_pipeline(orchestrator, RemoteURL(body.url.strip()), body.title, body.description)
