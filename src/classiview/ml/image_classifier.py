"""Image classification on top of an ONNX inference session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal, Protocol

import numpy as np

from classiview.errors import InferenceError
from classiview.ml.preprocessing import ImagePreprocessor
from classiview.ranking import Prediction

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from classiview.ml.model_manager import LoadedModel

logger = logging.getLogger(__name__)


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    @property
    def labels(self) -> list[str]:
        """Return the class labels in model output order."""
        ...

    def classify(self, image: NDArray[np.uint8]) -> list[Prediction]:
        """Classify an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            One prediction per class, in label order (unranked).
        """
        ...


class OnnxImageClassifier:
    """Runs a Teachable Machine style classifier exported to ONNX."""

    def __init__(self, model: LoadedModel, *, apply_softmax: bool = False) -> None:
        self._model = model
        self._apply_softmax = apply_softmax
        model_input = model.session.get_inputs()[0]
        self._input_name: str = model_input.name
        self._layout = _infer_layout(model_input.shape)

    @property
    def model_name(self) -> str:
        return self._model.name

    @property
    def labels(self) -> list[str]:
        return list(self._model.metadata.labels)

    def classify(self, image: NDArray[np.uint8]) -> list[Prediction]:
        tensor = ImagePreprocessor.to_model_input(image, self._model.metadata.image_size, self._layout)
        try:
            outputs = self._model.session.run(None, {self._input_name: tensor})
        except Exception as exc:  # onnxruntime raises its own pybind exception types
            raise InferenceError(f"Model execution failed: {exc}") from exc

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if self._apply_softmax:
            scores = softmax(scores)

        labels = self._model.metadata.labels
        if scores.shape[0] != len(labels):
            raise InferenceError(f"Model produced {scores.shape[0]} scores for {len(labels)} labels")

        return [Prediction(label=label, probability=float(score)) for label, score in zip(labels, scores, strict=True)]


def softmax(scores: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = np.exp(scores - np.max(scores))
    return shifted / shifted.sum()


def _infer_layout(shape: list[object]) -> Literal["NHWC", "NCHW"]:
    # Dynamic dims come back as strings or None; only a literal 3 counts.
    if len(shape) == 4 and shape[1] == 3 and shape[3] != 3:
        return "NCHW"
    return "NHWC"
