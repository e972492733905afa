"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, UploadFile, status

from classiview.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfoResponse,
    RankedPredictionItem,
    SnapshotRequest,
    StatusResponse,
)
from classiview.errors import ModelNotLoadedError, UploadTooLargeError

if TYPE_CHECKING:
    from classiview.config import Settings
    from classiview.ml.inference import InferencePool
    from classiview.ml.session import ClassifierSession
    from classiview.pipeline import ClassificationOutcome, ClassificationPipeline
    from classiview.sources import WebcamSource

router = APIRouter(prefix="/api/v1")

_CLASSIFY_ERRORS: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_session(request: Request) -> ClassifierSession:
    session: ClassifierSession = request.app.state.classifier_session
    return session


def _get_pipeline(request: Request) -> ClassificationPipeline:
    pipeline: ClassificationPipeline = request.app.state.pipeline
    return pipeline


def _get_webcam(request: Request) -> WebcamSource:
    webcam: WebcamSource = request.app.state.webcam
    return webcam


def _to_response(outcome: ClassificationOutcome) -> ClassifyImageResponse:
    return ClassifyImageResponse(
        predictions=[
            RankedPredictionItem(
                label=p.label,
                probability=p.probability,
                confidence_percent=p.confidence_percent,
                tier=p.tier.value,
            )
            for p in outcome.predictions
        ],
        model_name=outcome.model_name,
        processing_time_ms=round(outcome.processing_time_ms, 2),
    )


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses=_CLASSIFY_ERRORS,
    summary="Classify an uploaded image",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse:
    """Classify an uploaded image file and return every class, ranked."""
    max_size = _get_settings(request).max_file_size
    if file.size is not None and file.size > max_size:
        raise UploadTooLargeError(f"File too large: {file.size} bytes exceeds {max_size}")
    data = await file.read()
    if len(data) > max_size:
        raise UploadTooLargeError(f"File too large: {len(data)} bytes exceeds {max_size}")

    outcome = await _get_pipeline(request).classify_upload(data)
    return _to_response(outcome)


@router.post(
    "/classify-snapshot",
    response_model=ClassifyImageResponse,
    responses=_CLASSIFY_ERRORS,
    summary="Classify a browser webcam snapshot",
)
async def classify_snapshot(request: Request, body: SnapshotRequest) -> ClassifyImageResponse:
    """Classify a frame captured in the browser and sent as a data URL."""
    outcome = await _get_pipeline(request).classify_data_url(body.image)
    return _to_response(outcome)


@router.post(
    "/classify-webcam",
    response_model=ClassifyImageResponse,
    responses=_CLASSIFY_ERRORS,
    summary="Capture and classify a frame from the server camera",
)
async def classify_webcam(request: Request) -> ClassifyImageResponse:
    """Grab one frame from the server-attached camera and classify it."""
    outcome = await _get_pipeline(request).classify_webcam()
    return _to_response(outcome)


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Model status",
)
async def model_status(request: Request) -> StatusResponse:
    """Return the model state and the message shown in the UI status line."""
    current = _get_session(request).status()
    return StatusResponse(state=current.state.value, message=current.message)


@router.get(
    "/model",
    response_model=ModelInfoResponse,
    summary="Loaded model information",
)
async def model_info(request: Request) -> ModelInfoResponse:
    """Return the labels and input size of the loaded model."""
    session = _get_session(request)
    webcam_enabled = _get_webcam(request).enabled
    state = session.status().state.value
    try:
        classifier = session.classifier
    except ModelNotLoadedError:
        return ModelInfoResponse(
            model_name=None,
            labels=[],
            class_count=0,
            image_size=None,
            state=state,
            webcam_enabled=webcam_enabled,
        )

    labels = classifier.labels
    return ModelInfoResponse(
        model_name=classifier.model_name,
        labels=labels,
        class_count=len(labels),
        image_size=session.image_size,
        state=state,
        webcam_enabled=webcam_enabled,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    session = _get_session(request)
    models_loaded = [session.classifier.model_name] if session.is_ready else []
    return HealthResponse(
        status="ok" if session.is_ready else "degraded",
        gpu=settings.device == "cuda",
        models_loaded=models_loaded,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )
