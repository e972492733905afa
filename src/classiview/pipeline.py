"""Classification pipeline: decode -> classify -> rank.

Decoding and classification run in the inference pool; ranking is pure and
runs inline once the classifier returns.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from classiview.errors import PreconditionViolation
from classiview.ranking import rank, validate_prediction_set
from classiview.sources import decode_data_url, decode_upload

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from classiview.ml.inference import InferencePool
    from classiview.ml.preprocessing import ImagePreprocessor
    from classiview.ml.session import ClassifierSession
    from classiview.ranking import RankedPrediction
    from classiview.sources import WebcamSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationOutcome:
    predictions: list[RankedPrediction]
    model_name: str
    processing_time_ms: float


class ClassificationPipeline:
    """Runs one classification request from raw input to ranked predictions."""

    def __init__(
        self,
        session: ClassifierSession,
        pool: InferencePool,
        preprocessor: ImagePreprocessor,
        webcam: WebcamSource,
    ) -> None:
        self._session = session
        self._pool = pool
        self._preprocessor = preprocessor
        self._webcam = webcam

    async def classify_upload(self, data: bytes) -> ClassificationOutcome:
        started = time.perf_counter()
        classifier = self._session.classifier
        image = await self._pool.run(decode_upload, data, self._preprocessor)
        return await self._finish(image, classifier.model_name, started)

    async def classify_data_url(self, url: str) -> ClassificationOutcome:
        started = time.perf_counter()
        classifier = self._session.classifier
        image = await self._pool.run(decode_data_url, url, self._preprocessor)
        return await self._finish(image, classifier.model_name, started)

    async def classify_webcam(self) -> ClassificationOutcome:
        started = time.perf_counter()
        classifier = self._session.classifier
        image = await self._pool.run(self._webcam.snapshot)
        return await self._finish(image, classifier.model_name, started)

    async def _finish(self, image: NDArray[np.uint8], model_name: str, started: float) -> ClassificationOutcome:
        predictions = await self._pool.run(self._session.classify, image)
        try:
            validate_prediction_set(predictions, self._session.class_count)
        except PreconditionViolation:
            logger.exception("Classifier returned a malformed prediction set")
            raise

        ranked = rank(predictions)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if ranked:
            top = ranked[0]
            logger.info("Classified image in %.1fms: top=%s (%d%%)", elapsed_ms, top.label, top.confidence_percent)
        return ClassificationOutcome(predictions=ranked, model_name=model_name, processing_time_ms=elapsed_ms)
