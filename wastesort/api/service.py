from __future__ import annotations

import base64
import binascii
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from PIL import Image, UnidentifiedImageError

from ..ai import LabelSource, Prediction, ScoringConfig, classify_predictions
from ..ai.decision import CategoryDecision
from ..ai.types import DEFAULT_TOP_K, normalize_predictions
from ..fingerprint import fingerprint
from ..ledger.ledger import RewardLedger
from ..ledger.records import LedgerError


logger = logging.getLogger(__name__)


class InvalidSubmissionError(RuntimeError):
    """The submitted payload is not a readable image."""


@dataclass
class ClassificationService:
    label_source: LabelSource
    ledger: RewardLedger | None = None
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    top_k: int = DEFAULT_TOP_K
    label_timeout_seconds: float = 10.0
    label_workers: int = 16
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.label_workers < 1:
            raise ValueError("label_workers must be at least 1")
        self._executor = ThreadPoolExecutor(
            max_workers=self.label_workers, thread_name_prefix="label-source"
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def process_submission(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        image_bytes = self._decode_image(payload.get("image_base64"))
        user_id = str(payload.get("user_id") or "").strip() or None
        source = payload.get("source") or "upload"

        # Labels are requested first so the digest is computed while the source works.
        future = self._executor.submit(self.label_source.classify, image_bytes, self.top_k)
        digest = fingerprint(image_bytes)
        logger.info(
            "Running classification user=%s source=%s image_bytes=%d fingerprint=%s",
            user_id,
            source,
            len(image_bytes),
            digest[:12],
        )
        predictions, inference_available = self._collect_predictions(future, digest)

        decision = classify_predictions(predictions, self.scoring)
        logger.info(
            "Classification complete fingerprint=%s category=%s method=%s top_label=%r confidence=%.2f",
            digest[:12],
            decision.category,
            decision.method,
            decision.top_label,
            decision.top_confidence,
        )

        reward = self._reward(user_id, digest, decision, inference_available)
        return {
            "fingerprint": digest,
            "category": decision.category,
            "disposal_guidance": _guidance_payload(decision),
            "top_label": decision.top_label,
            "confidence": decision.top_confidence,
            "low_confidence": decision.low_confidence or not inference_available,
            "inference_available": inference_available,
            **reward,
        }

    def _decode_image(self, image_b64: Any) -> bytes:
        if not isinstance(image_b64, str) or not image_b64.strip():
            raise InvalidSubmissionError("Image payload is required")
        try:
            image_bytes = base64.b64decode(image_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            logger.warning("Failed to decode image payload: %s", exc)
            raise InvalidSubmissionError("Invalid base64 image payload") from exc
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as exc:
            logger.warning("Rejected unreadable image bytes=%d: %s", len(image_bytes), exc)
            raise InvalidSubmissionError("Unreadable image payload") from exc
        return image_bytes

    def _collect_predictions(self, future, digest: str) -> tuple[list[Prediction], bool]:
        try:
            raw = future.result(timeout=self.label_timeout_seconds)
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(
                "Label source timed out fingerprint=%s timeout=%.1fs; using fallback category",
                digest[:12],
                self.label_timeout_seconds,
            )
            return [], False
        except Exception:
            logger.exception(
                "Label source failed fingerprint=%s; using fallback category", digest[:12]
            )
            return [], False
        return normalize_predictions(raw or [], self.top_k), True

    def _reward(
        self,
        user_id: str | None,
        digest: str,
        decision: CategoryDecision,
        inference_available: bool,
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "awarded": False,
            "points_delta": 0,
            "new_balance": None,
            "reward_status": "skipped",
            "previous_category": None,
            "message": None,
        }
        if not inference_available:
            result["message"] = (
                "We could not analyse this photo right now, so it is shown as "
                f"'{decision.category}' with low confidence. No points were awarded."
            )
            return result
        if user_id is None or self.ledger is None:
            return result

        try:
            award = self.ledger.try_award(
                user_id, digest, decision.category, decision.top_confidence
            )
        except LedgerError as exc:
            logger.error(
                "Reward ledger write failed user=%s fingerprint=%s: %s",
                user_id,
                digest[:12],
                exc,
            )
            result["reward_status"] = "failed"
            result["message"] = (
                f"Your item was classified as {decision.category}, but we couldn't "
                "record your points. Please retry."
            )
            return result

        result["new_balance"] = award.new_balance
        if award.awarded:
            result.update(
                awarded=True,
                points_delta=award.points_delta,
                reward_status="awarded",
                message=f"You earned {award.points_delta} points for classifying waste!",
            )
        else:
            result.update(
                reward_status="duplicate",
                previous_category=award.record.category if award.record else None,
                message=(
                    "This image has already been classified. Points are awarded "
                    "once per unique image."
                ),
            )
        return result


def _guidance_payload(decision: CategoryDecision) -> Dict[str, Any]:
    payload = asdict(decision.guidance)
    payload["tips"] = list(payload["tips"])
    return payload


__all__ = ["ClassificationService", "InvalidSubmissionError"]
