from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field

from .types import LabelSource, LabelSourceError, Prediction, normalize_predictions

logger = logging.getLogger(__name__)


@dataclass
class ConsensusLabelSource(LabelSource):
    """Query two label sources in parallel and merge their rankings."""

    primary: LabelSource
    secondary: LabelSource
    primary_label: str = "primary"
    secondary_label: str = "secondary"
    timeout: float | None = None
    max_workers: int = 8
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(2, self.max_workers), thread_name_prefix="consensus"
        )

    def classify(self, image_bytes: bytes, top_k: int) -> list[Prediction]:
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        future_primary = self._executor.submit(self.primary.classify, image_bytes, top_k)
        future_secondary = self._executor.submit(
            self.secondary.classify, image_bytes, top_k
        )

        primary_result: list[Prediction] | None = None
        secondary_result: list[Prediction] | None = None
        primary_error: Exception | None = None
        try:
            primary_result = self._wait(future_primary, deadline)
        except Exception as exc:
            primary_error = exc
            logger.warning("Label source %s failed: %s", self.primary_label, exc)
        try:
            secondary_result = self._wait(future_secondary, deadline)
        except Exception as exc:
            logger.warning("Label source %s failed: %s", self.secondary_label, exc)
            if primary_error is not None:
                raise LabelSourceError(
                    f"Both label sources failed: {primary_error}; {exc}"
                ) from exc

        if primary_result is None:
            return normalize_predictions(secondary_result or [], top_k)
        if secondary_result is None:
            return normalize_predictions(primary_result, top_k)
        return self._merge(primary_result, secondary_result, top_k)

    def _wait(self, future: Future, deadline: float | None) -> list[Prediction]:
        if deadline is None:
            return future.result()
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FuturesTimeoutError as exc:
            future.cancel()
            raise LabelSourceError(f"timed out after {self.timeout:.1f}s") from exc

    def _merge(
        self,
        primary: list[Prediction],
        secondary: list[Prediction],
        top_k: int,
    ) -> list[Prediction]:
        # Average each label over both sources; a label one source omits counts as 0.
        totals: dict[str, float] = {}
        display: dict[str, str] = {}
        for prediction in list(primary) + list(secondary):
            key = prediction.label.strip().lower()
            if not key:
                continue
            totals[key] = totals.get(key, 0.0) + max(0.0, min(1.0, prediction.confidence))
            display.setdefault(key, prediction.label.strip())
        merged = [
            Prediction(label=display[key], confidence=total / 2.0)
            for key, total in totals.items()
        ]
        return normalize_predictions(merged, top_k)


__all__ = ["ConsensusLabelSource"]
