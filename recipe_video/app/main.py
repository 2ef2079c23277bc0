# recipe_video/app/main.py
from __future__ import annotations

import logging
import sys

from fastapi import FastAPI

from recipe_video.app.config import get_settings
from recipe_video.app.routers.recipes import router as recipes_router
from recipe_video.app.services.pipeline import create_default_orchestrator

# Logging simples no stdout (bom para dev e containers)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Recipe Video Ingestion API", version="0.3.0")

app.include_router(recipes_router)


@app.on_event("startup")
async def startup() -> None:
    settings = get_settings()
    errors = settings.validate_models()
    if errors:
        logger.error("Pipeline disabled, configuration errors: %s", ", ".join(errors))
        return
    app.state.orchestrator = create_default_orchestrator(settings)


@app.on_event("shutdown")
async def shutdown() -> None:
    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is not None:
        await orchestrator.aclose()


@app.get("/health")
def health():
    return {"ok": True}
