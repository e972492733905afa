"""Pydantic request/response schemas for the ClassiView API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RankedPredictionItem(BaseModel):
    """A single class prediction, annotated for display."""

    label: str
    probability: float = Field(description="Raw model probability")
    confidence_percent: int = Field(ge=0, le=100, description="round(probability * 100), half up")
    tier: Literal["high", "medium", "low"]


class ClassifyImageResponse(BaseModel):
    """Response for the classification endpoints."""

    model_config = ConfigDict(protected_namespaces=())

    predictions: list[RankedPredictionItem] = Field(description="All classes, highest probability first")
    model_name: str
    processing_time_ms: float


class SnapshotRequest(BaseModel):
    """A browser webcam snapshot encoded as a data URL."""

    image: str = Field(min_length=1, description="data:image/...;base64,<payload>")


class StatusResponse(BaseModel):
    """Model status as shown in the UI status line."""

    state: Literal["loading", "ready", "failed", "closed"]
    message: str


class ModelInfoResponse(BaseModel):
    """Information about the loaded model."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str | None
    labels: list[str]
    class_count: int
    image_size: int | None
    state: Literal["loading", "ready", "failed", "closed"]
    webcam_enabled: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    error: str
