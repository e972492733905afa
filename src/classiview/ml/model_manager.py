"""Model manager: fetch the model and its label metadata, build the ONNX session.

The model is either downloaded from a HuggingFace repository or read from a
local directory. Metadata follows the Teachable Machine ``metadata.json``
layout (``labels``, ``imageSize``, ``modelName``).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from classiview.errors import LoadError

if TYPE_CHECKING:
    from classiview.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model loading."""

    def ensure_downloaded(self) -> ModelFiles:
        """Ensure the model and metadata files are available locally."""
        ...

    def load(self) -> LoadedModel:
        """Load metadata and create an inference session."""
        ...


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class ModelMetadata(BaseModel):
    """Label metadata shipped next to the model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())

    labels: list[str] = Field(min_length=1)
    image_size: int = Field(default=224, ge=1, alias="imageSize")
    model_name: str | None = Field(default=None, alias="modelName")

    @field_validator("labels")
    @classmethod
    def _labels_unique_and_named(cls, labels: list[str]) -> list[str]:
        if any(not label for label in labels):
            raise ValueError("labels must be non-empty strings")
        if len(set(labels)) != len(labels):
            raise ValueError("labels must be unique")
        return labels


@dataclass(frozen=True)
class ModelFiles:
    model_path: Path
    metadata_path: Path


@dataclass(frozen=True)
class LoadedModel:
    """A ready-to-run model handle with its metadata."""

    session: InferenceSession
    metadata: ModelMetadata
    name: str

    @property
    def class_count(self) -> int:
        return len(self.metadata.labels)


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Resolves model files and creates ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self) -> ModelFiles:
        """Download model and metadata from HuggingFace, or locate them locally.

        Raises:
            LoadError: If either file is unreachable or missing.
        """
        settings = self._settings
        if settings.model_repo_id is None:
            files = ModelFiles(
                model_path=self._models_dir / settings.model_filename,
                metadata_path=self._models_dir / settings.metadata_filename,
            )
            for path in (files.model_path, files.metadata_path):
                if not path.is_file():
                    raise LoadError(f"Model file not found: {path}")
            return files

        try:
            self._models_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LoadError(f"Cannot create models directory {self._models_dir}: {exc}") from exc
        return ModelFiles(
            model_path=self._download(settings.model_filename),
            metadata_path=self._download(settings.metadata_filename),
        )

    def load_metadata(self, path: Path) -> ModelMetadata:
        """Parse and validate a metadata.json file."""
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return ModelMetadata.model_validate(raw)
        except OSError as exc:
            raise LoadError(f"Cannot read metadata {path}: {exc}") from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise LoadError(f"Malformed metadata {path}: {exc}") from exc
        except ValidationError as exc:
            raise LoadError(f"Invalid metadata {path}: {exc.error_count()} error(s)") from exc

    def create_session(self, model_path: Path) -> InferenceSession:
        """Create an InferenceSession for the given ONNX file."""
        try:
            return InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:  # onnxruntime raises its own pybind exception types
            raise LoadError(f"Cannot load model {model_path}: {exc}") from exc

    def load(self) -> LoadedModel:
        """Fetch, parse, and load the configured model."""
        files = self.ensure_downloaded()
        metadata = self.load_metadata(files.metadata_path)
        session = self.create_session(files.model_path)
        name = metadata.model_name or files.model_path.stem
        logger.info("Loaded model %s with %d classes", name, len(metadata.labels))
        return LoadedModel(session=session, metadata=metadata, name=name)

    # -- Internal -----------------------------------------------------------

    def _download(self, filename: str) -> Path:
        settings = self._settings
        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=settings.model_repo_id,
                    filename=filename,
                    revision=settings.model_revision,
                    local_dir=str(self._models_dir),
                )
            )
        except Exception as exc:  # hub errors differ across huggingface_hub releases
            raise LoadError(f"Cannot download {filename} from {settings.model_repo_id}: {exc}") from exc
        logger.info("Downloaded %s to %s", filename, downloaded)
        return downloaded

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                ("CUDAExecutionProvider", {"device_id": 0}),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
