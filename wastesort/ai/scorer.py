from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

from .keywords import ScoringConfig
from .types import Prediction

ScoreVector = Dict[str, float]


@dataclass(frozen=True)
class ScoringResult:
    scores: ScoreVector
    strong_hits: frozenset[str]


def empty_scores(config: ScoringConfig) -> ScoreVector:
    return {category: 0.0 for category in config.categories}


def find_strong_indicators(
    predictions: Sequence[Prediction], config: ScoringConfig
) -> frozenset[str]:
    """Categories whose strong indicator appears anywhere in the predictions."""
    labels = [prediction.label.lower() for prediction in predictions]
    hits = {
        category
        for category, terms in config.strong_indicators.items()
        if any(term in label for term in terms for label in labels)
    }
    return frozenset(hits)


def score_predictions(
    predictions: Sequence[Prediction], config: ScoringConfig
) -> ScoringResult:
    """Accumulate rank-weighted keyword matches into a per-category score."""
    scores = empty_scores(config)
    strong_hits = find_strong_indicators(predictions, config)
    # Iterate in category order so floating point sums are reproducible.
    for category in config.categories:
        if category in strong_hits:
            scores[category] += config.strong_indicator_bonus

    for index, prediction in enumerate(predictions):
        label = prediction.label.lower()
        weight = config.rank_weight(index)
        for rule in config.boosts:
            if rule.matches(label):
                scores[rule.category] += weight * rule.multiplier
        for category in config.categories:
            terms = config.keywords.get(category, ())
            if any(term in label for term in terms):
                scores[category] += weight

    return ScoringResult(scores=scores, strong_hits=strong_hits)


__all__ = [
    "ScoreVector",
    "ScoringResult",
    "empty_scores",
    "find_strong_indicators",
    "score_predictions",
]
