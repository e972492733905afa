"""Classifier session: owns the loaded model and reports its state.

One session exists per application. It is created in the ``loading`` state,
moves to ``ready`` or ``failed`` exactly once, and rejects classification
until it is ready. Closing the session at shutdown moves it to ``closed``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from classiview.errors import LoadError, ModelNotLoadedError
from classiview.ml.image_classifier import OnnxImageClassifier

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from classiview.ml.image_classifier import ImageClassifier
    from classiview.ml.model_manager import ModelManager
    from classiview.ranking import Prediction

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionStatus:
    state: SessionState
    message: str


class ClassifierSession:
    """Holds the classifier for the lifetime of the application."""

    def __init__(self, manager: ModelManager, *, apply_softmax: bool = False) -> None:
        self._manager = manager
        self._apply_softmax = apply_softmax
        self._lock = threading.Lock()
        self._classifier: ImageClassifier | None = None
        self._image_size: int | None = None
        self._state = SessionState.LOADING
        self._error: str | None = None

    # -- Lifecycle ----------------------------------------------------------

    def load(self) -> None:
        """Load the model; on failure the session records the error and stays unusable."""
        try:
            loaded = self._manager.load()
            classifier = OnnxImageClassifier(loaded, apply_softmax=self._apply_softmax)
        except LoadError as exc:
            logger.error("Failed to load model: %s", exc)
            self._fail(str(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected error while loading model")
            self._fail(f"{type(exc).__name__}: {exc}")
            return

        with self._lock:
            self._classifier = classifier
            self._image_size = loaded.metadata.image_size
            self._state = SessionState.READY
            self._error = None
        logger.info("Model ready: %s (%d classes)", classifier.model_name, len(classifier.labels))

    def attach(self, classifier: ImageClassifier, image_size: int | None = None) -> None:
        """Install an already constructed classifier and mark the session ready."""
        with self._lock:
            self._classifier = classifier
            self._image_size = image_size
            self._state = SessionState.READY
            self._error = None

    def close(self) -> None:
        """Release the model handle."""
        with self._lock:
            self._classifier = None
            self._image_size = None
            self._state = SessionState.CLOSED
            self._error = None
        logger.info("Classifier session closed")

    def _fail(self, error: str) -> None:
        with self._lock:
            self._classifier = None
            self._state = SessionState.FAILED
            self._error = error

    # -- Queries ------------------------------------------------------------

    def status(self) -> SessionStatus:
        with self._lock:
            state, error = self._state, self._error
        if state is SessionState.READY:
            return SessionStatus(state, "Model ready")
        if state is SessionState.FAILED:
            return SessionStatus(state, f"Failed to load model: {error}")
        if state is SessionState.CLOSED:
            return SessionStatus(state, "Model closed")
        return SessionStatus(state, "Loading AI model...")

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._state is SessionState.READY

    @property
    def image_size(self) -> int | None:
        with self._lock:
            return self._image_size

    @property
    def classifier(self) -> ImageClassifier:
        """Return the loaded classifier.

        Raises:
            ModelNotLoadedError: If the model is still loading, failed to load or was closed.
        """
        with self._lock:
            classifier, state, error = self._classifier, self._state, self._error
        if classifier is None:
            if state is SessionState.FAILED:
                raise ModelNotLoadedError(f"Model failed to load: {error}")
            if state is SessionState.CLOSED:
                raise ModelNotLoadedError("Model session closed")
            raise ModelNotLoadedError("Model not loaded yet")
        return classifier

    @property
    def class_count(self) -> int:
        return len(self.classifier.labels)

    # -- Inference ----------------------------------------------------------

    def classify(self, image: NDArray[np.uint8]) -> list[Prediction]:
        """Classify an image with the loaded model (unranked, label order)."""
        return self.classifier.classify(image)
