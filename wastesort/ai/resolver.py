from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from .keywords import ScoringConfig
from .scorer import ScoreVector, ScoringResult
from .types import Prediction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConflictOutcome:
    pair: tuple[str, str]
    winner: str | None
    rule: str


@dataclass(frozen=True)
class Resolution:
    scores: ScoreVector
    outcomes: tuple[ConflictOutcome, ...] = field(default_factory=tuple)

    @property
    def ambiguous(self) -> tuple[ConflictOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.winner is None)


def _tiebreak_winner(
    top_label: str, first: str, second: str, config: ScoringConfig
) -> str | None:
    first_hit = any(term in top_label for term in config.tiebreak_terms.get(first, ()))
    second_hit = any(term in top_label for term in config.tiebreak_terms.get(second, ()))
    if first_hit and not second_hit:
        return first
    if second_hit and not first_hit:
        return second
    return None


def resolve_conflicts(
    scoring: ScoringResult,
    predictions: Sequence[Prediction],
    config: ScoringConfig,
) -> Resolution:
    """Break near-ties between categories whose vocabularies overlap.

    Returns a new score vector; the input is left untouched.
    """
    scores = dict(scoring.scores)
    outcomes: list[ConflictOutcome] = []
    top_label = predictions[0].label.lower() if predictions else ""

    for first, second in config.contested_pairs:
        first_score = scores.get(first, 0.0)
        second_score = scores.get(second, 0.0)
        if first_score <= 0 or second_score <= 0:
            continue
        if abs(first_score - second_score) >= config.tie_epsilon:
            continue

        first_strong = first in scoring.strong_hits
        second_strong = second in scoring.strong_hits
        if first_strong != second_strong:
            winner = first if first_strong else second
            rule = "strong_indicator"
        else:
            winner = _tiebreak_winner(top_label, first, second, config)
            rule = "top_prediction" if winner else "unresolved"

        if winner is not None:
            loser = second if winner == first else first
            scores[loser] = 0.0
            logger.debug(
                "Category conflict resolved pair=%s/%s winner=%s rule=%s",
                first,
                second,
                winner,
                rule,
            )
        else:
            logger.info(
                "Unresolved category conflict pair=%s/%s scores=%.3f/%.3f top_label=%r",
                first,
                second,
                first_score,
                second_score,
                top_label,
                extra={
                    "tuning": {
                        "event": "unresolved_conflict",
                        "pair": [first, second],
                        "scores": {first: first_score, second: second_score},
                        "labels": [p.label for p in predictions],
                    }
                },
            )
        outcomes.append(ConflictOutcome(pair=(first, second), winner=winner, rule=rule))

    return Resolution(scores=scores, outcomes=tuple(outcomes))


__all__ = ["ConflictOutcome", "Resolution", "resolve_conflicts"]
