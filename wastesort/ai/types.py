from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

CATEGORIES: tuple[str, ...] = (
    "plastic",
    "paper",
    "glass",
    "metal",
    "organic",
    "wood",
    "electronic",
    "others",
)

# Catch-all category returned whenever nothing else can be decided.
FALLBACK_CATEGORY = "others"

DEFAULT_TOP_K = 15


@dataclass(frozen=True)
class Prediction:
    label: str
    confidence: float


class LabelSource(Protocol):
    def classify(self, image_bytes: bytes, top_k: int) -> list[Prediction]: ...


class LabelSourceError(RuntimeError):
    """Raised when a label source cannot produce predictions."""


def normalize_predictions(
    predictions: Sequence[Prediction], top_k: int = DEFAULT_TOP_K
) -> list[Prediction]:
    """Clamp confidences, drop blank labels and order by confidence."""
    cleaned: list[Prediction] = []
    for prediction in predictions:
        label = str(prediction.label or "").strip()
        if not label:
            continue
        try:
            confidence = float(prediction.confidence)
        except (TypeError, ValueError):
            confidence = 0.0
        cleaned.append(Prediction(label=label, confidence=max(0.0, min(1.0, confidence))))
    # sorted() is stable, so equal confidences keep the source's order
    cleaned = sorted(cleaned, key=lambda p: p.confidence, reverse=True)
    return cleaned[: max(0, top_k)]


__all__ = [
    "CATEGORIES",
    "DEFAULT_TOP_K",
    "FALLBACK_CATEGORY",
    "LabelSource",
    "LabelSourceError",
    "Prediction",
    "normalize_predictions",
]
