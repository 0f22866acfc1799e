from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from .guidance import DisposalGuidance, guidance_for
from .keywords import ScoringConfig
from .resolver import resolve_conflicts
from .scorer import ScoreVector, score_predictions
from .types import FALLBACK_CATEGORY, Prediction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryDecision:
    category: str
    guidance: DisposalGuidance
    scores: ScoreVector
    top_label: str | None
    top_confidence: float
    method: str
    low_confidence: bool
    ambiguous: bool = False


def fallback_category(label: str, config: ScoringConfig) -> str:
    """Single-label keyword lookup used when no category scored at all."""
    text = label.lower()
    for category, terms in config.fallback_terms:
        if any(term in text for term in terms):
            return category
    for category in config.categories:
        if any(term in text for term in config.keywords.get(category, ())):
            return category
    for category, terms in config.fallback_extra_terms:
        if any(term in text for term in terms):
            return category
    return FALLBACK_CATEGORY


def decide(
    scores: Mapping[str, float],
    top_prediction: Prediction | None,
    config: ScoringConfig,
) -> str:
    """Pick the highest scoring category; ties keep enumeration order."""
    best_category = FALLBACK_CATEGORY
    best_score = 0.0
    for category in config.categories:
        score = scores.get(category, 0.0)
        if score > best_score:
            best_category = category
            best_score = score
    if best_score > 0:
        return best_category
    if top_prediction is None:
        return FALLBACK_CATEGORY
    return fallback_category(top_prediction.label, config)


def classify_predictions(
    predictions: Sequence[Prediction], config: ScoringConfig
) -> CategoryDecision:
    top = predictions[0] if predictions else None
    scoring = score_predictions(predictions, config)
    resolution = resolve_conflicts(scoring, predictions, config)
    category = decide(resolution.scores, top, config)

    if top is None:
        method = "default"
    elif max(resolution.scores.values(), default=0.0) > 0:
        method = "score"
    else:
        method = "fallback_label"

    top_confidence = top.confidence if top is not None else 0.0
    low_confidence = (
        method != "score" and category == FALLBACK_CATEGORY
    ) or top_confidence < config.low_confidence_threshold

    logger.debug(
        "Category decided category=%s method=%s top_label=%r scores=%s",
        category,
        method,
        top.label if top else None,
        {name: round(value, 3) for name, value in resolution.scores.items()},
    )
    return CategoryDecision(
        category=category,
        guidance=guidance_for(category),
        scores=resolution.scores,
        top_label=top.label if top else None,
        top_confidence=top_confidence,
        method=method,
        low_confidence=low_confidence,
        ambiguous=bool(resolution.ambiguous),
    )


__all__ = ["CategoryDecision", "classify_predictions", "decide", "fallback_category"]
