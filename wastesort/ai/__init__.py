from __future__ import annotations

from .decision import CategoryDecision, classify_predictions
from .keywords import ScoringConfig
from .types import CATEGORIES, FALLBACK_CATEGORY, LabelSource, LabelSourceError, Prediction

__all__ = [
    "CATEGORIES",
    "FALLBACK_CATEGORY",
    "CategoryDecision",
    "LabelSource",
    "LabelSourceError",
    "Prediction",
    "ScoringConfig",
    "classify_predictions",
    "StaticLabelSource",
    "GeminiLabelSource",
    "ConsensusLabelSource",
]


def __getattr__(name: str):
    if name == "StaticLabelSource":
        from .static import StaticLabelSource

        return StaticLabelSource
    if name == "GeminiLabelSource":
        from .gemini_client import GeminiLabelSource

        return GeminiLabelSource
    if name == "ConsensusLabelSource":
        from .consensus import ConsensusLabelSource

        return ConsensusLabelSource
    raise AttributeError(f"module 'wastesort.ai' has no attribute {name!r}")
