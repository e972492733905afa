"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from classiview.api.errors import register_error_handlers
from classiview.api.routes import router
from classiview.config import Settings, get_settings
from classiview.ml.inference import InferencePool
from classiview.ml.model_manager import OnnxModelManager
from classiview.ml.preprocessing import ImagePreprocessor
from classiview.ml.session import ClassifierSession
from classiview.pipeline import ClassificationPipeline
from classiview.sources import WebcamSource

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


def init_state(app: FastAPI, settings: Settings, session: ClassifierSession | None = None) -> None:
    """Attach settings, session, pool, and pipeline to the application state."""
    if session is None:
        session = ClassifierSession(OnnxModelManager(settings), apply_softmax=settings.apply_softmax)
    pool = InferencePool(settings)
    webcam = WebcamSource(settings.webcam_device, settings.webcam_warmup_frames)

    app.state.settings = settings
    app.state.classifier_session = session
    app.state.inference_pool = pool
    app.state.webcam = webcam
    app.state.pipeline = ClassificationPipeline(
        session=session,
        pool=pool,
        preprocessor=ImagePreprocessor(settings.max_image_pixels),
        webcam=webcam,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting ClassiView (device=%s, max_concurrent=%s, model=%s, webcam=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_repo_id or settings.models_dir,
        settings.webcam_device,
    )

    init_state(app, settings)
    session: ClassifierSession = app.state.classifier_session

    # Load in the background so the UI can report "Loading AI model..." meanwhile.
    load_task = asyncio.create_task(asyncio.to_thread(session.load))
    app.state.load_task = load_task

    logger.info("ClassiView accepting requests")
    yield

    logger.info("Shutting down ClassiView")
    await load_task
    app.state.inference_pool.shutdown()
    session.close()
    logger.info("ClassiView shutdown complete")


def create_app(serve_ui: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="ClassiView",
        description="Image classification with ranked confidence scores",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(application)
    application.include_router(router)
    if serve_ui:
        application.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="ui")
    return application


app = create_app(serve_ui=get_settings().serve_ui)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
