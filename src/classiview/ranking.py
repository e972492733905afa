"""Prediction ranking: sort a prediction set and annotate confidence tiers.

Percentages use round-half-up (``floor(p * 100 + 0.5)``), which is what the
browser's ``Math.round`` does for non-negative values, so 0.125 ranks as 13%.
Equal probabilities keep their first-seen order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from classiview.errors import PreconditionViolation

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

HIGH_THRESHOLD: int = 70
MEDIUM_THRESHOLD: int = 40


class Tier(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Prediction:
    """Model output for a single class."""

    label: str
    probability: float


@dataclass(frozen=True)
class RankedPrediction:
    """A prediction annotated for display."""

    label: str
    probability: float
    confidence_percent: int
    tier: Tier


def confidence_percent(probability: float) -> int:
    """Convert a probability to an integer percentage clamped to [0, 100]."""
    if not math.isfinite(probability):
        return 0
    percent = math.floor(probability * 100 + 0.5)
    return max(0, min(100, percent))


def confidence_tier(percent: int) -> Tier:
    """Bucket a percentage; lower bounds are inclusive."""
    if percent >= HIGH_THRESHOLD:
        return Tier.HIGH
    if percent >= MEDIUM_THRESHOLD:
        return Tier.MEDIUM
    return Tier.LOW


def rank(predictions: Iterable[Prediction]) -> list[RankedPrediction]:
    """Order predictions by descending probability and annotate each one.

    Pure function: the input is not modified and the output has exactly one
    entry per input prediction.
    """
    ordered = sorted(predictions, key=_sort_key, reverse=True)
    ranked: list[RankedPrediction] = []
    for prediction in ordered:
        percent = confidence_percent(prediction.probability)
        ranked.append(
            RankedPrediction(
                label=prediction.label,
                probability=prediction.probability,
                confidence_percent=percent,
                tier=confidence_tier(percent),
            )
        )
    return ranked


def validate_prediction_set(predictions: Sequence[Prediction], expected_count: int | None = None) -> None:
    """Check the classifier contract before ranking.

    Raises:
        PreconditionViolation: On wrong cardinality, empty or duplicate labels,
            or probabilities that are non-finite or outside [0, 1].
    """
    if expected_count is not None and len(predictions) != expected_count:
        raise PreconditionViolation(f"Expected {expected_count} predictions, got {len(predictions)}")

    seen: set[str] = set()
    for prediction in predictions:
        if not prediction.label:
            raise PreconditionViolation("Prediction with empty label")
        if prediction.label in seen:
            raise PreconditionViolation(f"Duplicate label in prediction set: {prediction.label!r}")
        seen.add(prediction.label)

        p = prediction.probability
        if not math.isfinite(p) or p < 0.0 or p > 1.0:
            raise PreconditionViolation(f"Probability out of range for {prediction.label!r}: {p}")


def _sort_key(prediction: Prediction) -> float:
    # NaN would break the total order; sink it below every real value.
    p = prediction.probability
    return -math.inf if math.isnan(p) else p
