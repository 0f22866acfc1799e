from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .types import LabelSource, Prediction, normalize_predictions


@dataclass
class StaticLabelSource(LabelSource):
    """Label source that answers every image with the same predictions."""

    predictions: Sequence[Prediction] = field(default_factory=tuple)

    @classmethod
    def from_pairs(cls, pairs: Sequence[Sequence[object]]) -> "StaticLabelSource":
        return cls(
            predictions=tuple(
                Prediction(label=str(label), confidence=float(confidence))
                for label, confidence in pairs
            )
        )

    def classify(self, image_bytes: bytes, top_k: int) -> list[Prediction]:
        return normalize_predictions(self.predictions, top_k)


__all__ = ["StaticLabelSource"]
