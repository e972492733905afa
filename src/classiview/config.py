"""Environment-based configuration for ClassiView."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from CLASSIVIEW_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLASSIVIEW_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    serve_ui: bool = True

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    inference_timeout: float = Field(default=30.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Model location (repo_id None = read from models_dir)
    models_dir: str = "./model"
    model_repo_id: str | None = None
    model_revision: str | None = None
    model_filename: str = "model.onnx"
    metadata_filename: str = "metadata.json"
    apply_softmax: bool = False

    # Server-attached webcam (None = disabled)
    webcam_device: int | None = None
    webcam_warmup_frames: int = Field(default=5, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
