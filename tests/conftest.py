"""Shared test helpers."""

from __future__ import annotations

import base64
import io
from typing import TYPE_CHECKING

import pytest
from PIL import Image

from classiview.ranking import Prediction

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


class FakeClassifier:
    """Returns fixed probabilities in label order."""

    def __init__(self, scores: dict[str, float], model_name: str = "pets") -> None:
        self._scores = scores
        self._model_name = model_name
        self.calls: list[tuple[int, ...]] = []

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def labels(self) -> list[str]:
        return list(self._scores)

    def classify(self, image: NDArray[np.uint8]) -> list[Prediction]:
        self.calls.append(image.shape)
        return [Prediction(label=label, probability=p) for label, p in self._scores.items()]


def make_image_bytes(width: int = 32, height: int = 24, fmt: str = "PNG", color: str = "red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def make_data_url(width: int = 32, height: int = 24) -> str:
    payload = base64.b64encode(make_image_bytes(width, height, fmt="JPEG")).decode("ascii")
    return f"data:image/jpeg;base64,{payload}"


@pytest.fixture()
def pet_scores() -> dict[str, float]:
    # Label order differs from rank order on purpose.
    return {"dog": 0.15, "fox": 0.03, "cat": 0.82}


@pytest.fixture()
def png_bytes() -> bytes:
    return make_image_bytes()
