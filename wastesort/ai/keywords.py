"""Keyword tables and tuning constants for the category engine.

The tables are held in an immutable :class:`ScoringConfig` value that is built
once at startup (optionally from a JSON override file) and passed into the
scorer, resolver and decision steps.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .types import CATEGORIES, FALLBACK_CATEGORY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordPattern:
    """A lowercase substring, optionally qualified by co-occurring terms."""

    term: str
    requires: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if self.term not in text:
            return False
        if any(required not in text for required in self.requires):
            return False
        return not any(excluded in text for excluded in self.excludes)

    @classmethod
    def parse(cls, value: Any) -> "KeywordPattern":
        if isinstance(value, KeywordPattern):
            return value
        if isinstance(value, str):
            return cls(term=_clean_term(value))
        if isinstance(value, dict) and value.get("term"):
            return cls(
                term=_clean_term(value["term"]),
                requires=_clean_terms(value.get("requires", ())),
                excludes=_clean_terms(value.get("excludes", ())),
            )
        raise ValueError(f"Invalid keyword pattern: {value!r}")


@dataclass(frozen=True)
class BoostRule:
    category: str
    multiplier: float
    patterns: tuple[KeywordPattern, ...]

    def matches(self, text: str) -> bool:
        return any(pattern.matches(text) for pattern in self.patterns)


# Terms match as substrings of a label, so short ones such as "tin" and "can"
# also hit longer words. Boost rules can narrow a term with excludes.
_DEFAULT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "plastic": (
        "bottle", "plastic", "container", "cup", "box", "packaging",
        "polymer", "synthetic", "polystyrene", "polyethylene",
    ),
    "paper": (
        "paper", "newspaper", "book", "cardboard", "carton", "envelope",
        "magazine", "document", "notebook", "tissue",
    ),
    "glass": (
        "glass", "bottle", "jar", "wine glass", "beer glass", "vase",
        "crystal", "lens", "mirror", "window",
    ),
    "metal": (
        "metal", "aluminum", "tin", "steel", "iron", "copper", "brass",
        "bronze", "silver", "gold", "can", "knife", "fork", "spoon", "nail",
        "screw", "wire", "chain", "foil", "coin", "key", "lock", "hammer",
        "tool", "machinery", "appliance", "vehicle", "bicycle", "car part",
    ),
    "organic": (
        "fruit", "vegetable", "food", "plant", "leaf", "coffee", "tea",
        "nut", "seed", "bean", "chestnut", "buckeye", "conker", "acorn",
        "apple", "orange", "banana", "grape", "berry", "corn", "wheat",
        "mushroom", "herb", "spice", "root", "shell", "peel",
        "garden", "grass", "flower", "biodegradable", "compost",
    ),
    "wood": (
        "wood", "timber", "lumber", "log", "plank", "stick", "branch",
        "bark", "tree", "forest", "wooden",
    ),
    "electronic": (
        "computer", "phone", "laptop", "electronic", "battery", "calculator",
        "device", "charger", "adapter", "cable", "screen", "monitor",
        "keyboard", "mouse", "printer", "circuit", "chip", "processor",
        "television", "radio", "speaker", "headphone", "camera", "remote",
        "console", "game",
    ),
    "others": (),
}

_WOOD_SPECIES: tuple[str, ...] = (
    "hardwood", "softwood", "oak", "pine", "maple", "cedar", "birch",
    "mahogany", "walnut",
)

_DEFAULT_BOOSTS: tuple[tuple[str, float, tuple[Any, ...]], ...] = (
    (
        "electronic",
        2.0,
        (
            "computer", "laptop", "phone", "device", "electronic",
            "calculator", "keyboard", "screen", "monitor", "television",
            "circuit", "battery",
        ),
    ),
    (
        "plastic",
        1.5,
        (
            "plastic",
            {"term": "bottle", "excludes": ["glass"]},
            "container", "synthetic", "polymer",
        ),
    ),
    (
        "glass",
        1.5,
        (
            {"term": "glass", "excludes": ["magnifying"]},
            {"term": "bottle", "requires": ["glass"]},
            "window", "mirror", "lens",
        ),
    ),
    (
        "wood",
        1.5,
        (
            "wood", "timber", "log", "plank", "wooden", "lumber",
            {"term": "tree", "requires": ["trunk"]},
        )
        + _WOOD_SPECIES,
    ),
    (
        "metal",
        1.5,
        (
            "metal", "steel", "iron", "aluminum", "tin can", "nail", "screw",
            "coin",
            {"term": "key", "excludes": ["keyboard", "monkey", "turkey", "hockey", "donkey"]},
        ),
    ),
)

_DEFAULT_STRONG_INDICATORS: dict[str, tuple[str, ...]] = {
    "wood": ("wooden", "lumber", "timber", "log", "plank") + _WOOD_SPECIES,
    "metal": (
        "steel", "iron", "aluminum", "copper", "brass", "bronze", "metallic",
        "stainless steel", "wrought iron", "metal", "alloy", "tin", "zinc",
    ),
}

_DEFAULT_TIEBREAK_TERMS: dict[str, tuple[str, ...]] = {
    "wood": ("wood", "timber", "lumber", "plank") + _WOOD_SPECIES,
    "metal": (
        "metal", "steel", "iron", "aluminum", "copper", "brass", "bronze",
    ),
}

_DEFAULT_FALLBACK_TERMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("wood", ("wood", "timber", "log", "plank", "tree trunk")),
    ("metal", ("metal", "steel", "iron", "aluminum", "can", "nail", "screw")),
)

_DEFAULT_FALLBACK_EXTRA_TERMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("organic", ("edible",)),
    ("wood", ("wooden", "furniture")),
    ("metal", ("metallic", "machinery")),
)


def _clean_term(value: Any) -> str:
    term = str(value).strip().lower()
    if not term:
        raise ValueError("Keyword terms cannot be empty")
    return term


def _clean_terms(values: Iterable[Any]) -> tuple[str, ...]:
    if isinstance(values, str):
        values = [values]
    return tuple(_clean_term(value) for value in values)


def _freeze_terms(table: Mapping[str, Iterable[Any]]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType(
        {str(category): _clean_terms(terms) for category, terms in table.items()}
    )


def _build_boosts(raw: Iterable[Any]) -> tuple[BoostRule, ...]:
    rules: list[BoostRule] = []
    for entry in raw:
        if isinstance(entry, BoostRule):
            rules.append(entry)
            continue
        if isinstance(entry, dict):
            category = entry.get("category")
            multiplier = entry.get("multiplier", 1.0)
            patterns = entry.get("patterns", ())
        else:
            category, multiplier, patterns = entry
        rules.append(
            BoostRule(
                category=str(category),
                multiplier=float(multiplier),
                patterns=tuple(KeywordPattern.parse(p) for p in patterns),
            )
        )
    return tuple(rules)


def _build_ordered_terms(raw: Iterable[Any]) -> tuple[tuple[str, tuple[str, ...]], ...]:
    ordered: list[tuple[str, tuple[str, ...]]] = []
    for entry in raw:
        if isinstance(entry, dict):
            ordered.append((str(entry["category"]), _clean_terms(entry.get("terms", ()))))
        else:
            category, terms = entry
            ordered.append((str(category), _clean_terms(terms)))
    return tuple(ordered)


@dataclass(frozen=True)
class ScoringConfig:
    categories: tuple[str, ...] = CATEGORIES
    keywords: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: _DEFAULT_KEYWORDS
    )
    boosts: tuple[BoostRule, ...] = field(
        default_factory=lambda: _build_boosts(_DEFAULT_BOOSTS)
    )
    strong_indicators: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: _DEFAULT_STRONG_INDICATORS
    )
    strong_indicator_bonus: float = 3.0
    tiebreak_terms: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: _DEFAULT_TIEBREAK_TERMS
    )
    contested_pairs: tuple[tuple[str, str], ...] = (("wood", "metal"),)
    tie_epsilon: float = 1.0
    rank_decay: float = 0.05
    min_rank_weight: float = 0.05
    fallback_terms: tuple[tuple[str, tuple[str, ...]], ...] = _DEFAULT_FALLBACK_TERMS
    fallback_extra_terms: tuple[tuple[str, tuple[str, ...]], ...] = (
        _DEFAULT_FALLBACK_EXTRA_TERMS
    )
    low_confidence_threshold: float = 0.3

    def __post_init__(self) -> None:
        categories = tuple(str(c).strip().lower() for c in self.categories)
        object.__setattr__(self, "categories", categories)
        object.__setattr__(self, "keywords", _freeze_terms(self.keywords))
        object.__setattr__(
            self, "strong_indicators", _freeze_terms(self.strong_indicators)
        )
        object.__setattr__(self, "tiebreak_terms", _freeze_terms(self.tiebreak_terms))
        object.__setattr__(self, "boosts", _build_boosts(self.boosts))
        object.__setattr__(
            self,
            "contested_pairs",
            tuple((str(a), str(b)) for a, b in self.contested_pairs),
        )
        object.__setattr__(
            self, "fallback_terms", _build_ordered_terms(self.fallback_terms)
        )
        object.__setattr__(
            self, "fallback_extra_terms", _build_ordered_terms(self.fallback_extra_terms)
        )
        self._validate()

    def _validate(self) -> None:
        known = set(self.categories)
        if FALLBACK_CATEGORY not in known:
            raise ValueError(f"Category list must include {FALLBACK_CATEGORY!r}")
        if len(known) != len(self.categories):
            raise ValueError("Category list contains duplicates")
        referenced = (
            set(self.keywords)
            | set(self.strong_indicators)
            | set(self.tiebreak_terms)
            | {rule.category for rule in self.boosts}
            | {category for pair in self.contested_pairs for category in pair}
            | {category for category, _ in self.fallback_terms}
            | {category for category, _ in self.fallback_extra_terms}
        )
        unknown = referenced - known
        if unknown:
            raise ValueError(f"Unknown categories in scoring config: {sorted(unknown)}")
        if any(a == b for a, b in self.contested_pairs):
            raise ValueError("Contested pairs must name two different categories")
        if self.tie_epsilon < 0:
            raise ValueError("tie_epsilon must be >= 0")
        if self.strong_indicator_bonus < 0:
            raise ValueError("strong_indicator_bonus must be >= 0")
        if any(rule.multiplier < 0 for rule in self.boosts):
            raise ValueError("Boost multipliers must be >= 0")
        if self.rank_decay < 0 or self.min_rank_weight <= 0:
            raise ValueError("rank_decay must be >= 0 and min_rank_weight > 0")

    def rank_weight(self, index: int) -> float:
        return max(self.min_rank_weight, 1.0 - index * self.rank_decay)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ScoringConfig":
        """Overlay the supplied keys on the default tables."""
        config = cls()
        if not isinstance(payload, Mapping):
            raise ValueError("Scoring config must be a JSON object")
        overrides: dict[str, Any] = {}
        for key in (
            "categories",
            "keywords",
            "boosts",
            "strong_indicators",
            "tiebreak_terms",
            "contested_pairs",
            "fallback_terms",
            "fallback_extra_terms",
        ):
            if key in payload:
                overrides[key] = payload[key]
        for key in (
            "strong_indicator_bonus",
            "tie_epsilon",
            "rank_decay",
            "min_rank_weight",
            "low_confidence_threshold",
        ):
            if key in payload:
                overrides[key] = float(payload[key])
        if "categories" in overrides:
            overrides["categories"] = tuple(overrides["categories"])
        if "contested_pairs" in overrides:
            overrides["contested_pairs"] = tuple(
                tuple(pair) for pair in overrides["contested_pairs"]
            )
        return replace(config, **overrides)


def load_scoring_config(path: Path | None) -> ScoringConfig:
    if path is None:
        return ScoringConfig()
    data = json.loads(path.read_text(encoding="utf-8"))
    config = ScoringConfig.from_dict(data)
    logger.info(
        "Loaded scoring config from %s categories=%d epsilon=%.2f bonus=%.2f",
        path,
        len(config.categories),
        config.tie_epsilon,
        config.strong_indicator_bonus,
    )
    return config


__all__ = [
    "BoostRule",
    "KeywordPattern",
    "ScoringConfig",
    "load_scoring_config",
]
