"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.backend.api.deps import build_discovery_service
from src.backend.api.routes import router
from src.backend.db.engine import init_db
from src.discovery.errors import Unavailable, ValidationError
from src.discovery.vision import VisionModels
from src.shared.config import settings
from src.shared.logging import get_logger, setup_logging, shutdown_tracing

logger = get_logger(__name__)


async def _load_vision_models() -> VisionModels:
    """Build the on-device models once; without them the local image tiers are skipped."""
    if not settings.vision_models_enabled:
        return VisionModels()
    try:
        from src.discovery.local_models import load_vision_models
    except ImportError:
        logger.warning("torchvision not installed, on-device image tiers disabled (install the 'vision' extra)")
        return VisionModels()

    try:
        return await asyncio.to_thread(load_vision_models)
    except Exception:
        logger.warning("Failed to load on-device vision models, local image tiers disabled", exc_info=True)
        return VisionModels()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    await init_db()
    # Shared read-only by every request
    vision_models = getattr(app.state, "vision_models", None) or await _load_vision_models()
    app.state.vision_models = vision_models
    app.state.discovery = build_discovery_service(vision_models)
    logger.info(
        "Discovery service ready (classifier=%s, detector=%s)",
        vision_models.classifier is not None,
        vision_models.detector is not None,
    )
    yield
    shutdown_tracing()


app = FastAPI(
    title="Nearby Shop Discovery",
    description="Finds and ranks products in shops near the user",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(Unavailable)
async def unavailable_handler(request: Request, exc: Unavailable) -> JSONResponse:
    logger.error("Storage unavailable for %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"error": "Storage is temporarily unavailable."})


app.include_router(router, prefix="/api")
