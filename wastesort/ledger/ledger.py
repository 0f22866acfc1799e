from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from ..fingerprint import is_fingerprint
from .records import ClassificationRecord, LedgerError, PointsHistoryEntry
from .storage import LedgerStore

logger = logging.getLogger(__name__)

POINTS_FOR_CLASSIFICATION = 5
CLASSIFICATION_REASON = "Waste Classification"


@dataclass(frozen=True)
class AwardResult:
    awarded: bool
    new_balance: int | None
    points_delta: int = 0
    duplicate: bool = False
    record: ClassificationRecord | None = None


class RewardLedger:
    """Award points once per unique image and keep the balance/history pair."""

    def __init__(
        self,
        store: LedgerStore,
        award_points: int = POINTS_FOR_CLASSIFICATION,
        reason: str = CLASSIFICATION_REASON,
    ) -> None:
        if award_points <= 0:
            raise ValueError("award_points must be positive")
        self._store = store
        self._award_points = int(award_points)
        self._reason = reason

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def award_points(self) -> int:
        return self._award_points

    def try_award(
        self,
        user_id: str,
        fingerprint: str,
        category: str,
        confidence_of_top: float = 0.0,
    ) -> AwardResult:
        user_id = _require_user(user_id)
        if not is_fingerprint(fingerprint):
            raise ValueError("fingerprint must be a hex SHA-256 digest")

        if self._store.exists_record(fingerprint):
            return self._duplicate(user_id, fingerprint, self._store.get_record(fingerprint))

        record = ClassificationRecord(
            fingerprint=fingerprint,
            user_id=user_id,
            category=category,
            confidence_of_top=float(confidence_of_top),
        )
        entry = PointsHistoryEntry(
            user_id=user_id,
            delta=self._award_points,
            reason=self._reason,
            description=f"Classified {category} waste through image upload",
            fingerprint=fingerprint,
            created_at=record.created_at,
        )
        if not self._store.insert_record_and_credit(record, entry):
            # Another submission of the same content committed first.
            return self._duplicate(user_id, fingerprint, self._store.get_record(fingerprint))

        balance = self._read_balance(user_id)
        logger.info(
            "Awarded points user=%s fingerprint=%s category=%s points=%d balance=%s",
            user_id,
            fingerprint[:12],
            category,
            self._award_points,
            balance,
        )
        return AwardResult(
            awarded=True,
            new_balance=balance,
            points_delta=self._award_points,
            record=record,
        )

    def _duplicate(
        self, user_id: str, fingerprint: str, existing: ClassificationRecord | None
    ) -> AwardResult:
        logger.info(
            "Skipping award for previously classified content user=%s fingerprint=%s first_user=%s",
            user_id,
            fingerprint[:12],
            existing.user_id if existing else None,
        )
        return AwardResult(
            awarded=False,
            new_balance=self._read_balance(user_id),
            duplicate=True,
            record=existing,
        )

    def _read_balance(self, user_id: str) -> int | None:
        # Only called once the award outcome is settled.
        try:
            return self._store.get_balance(user_id)
        except LedgerError as exc:
            logger.warning("Balance read failed user=%s: %s", user_id, exc)
            return None

    def deduct(
        self, user_id: str, amount: int, reason: str, description: str | None = None
    ) -> int:
        """Spend points; raises InsufficientPointsError if the balance is too low."""
        user_id = _require_user(user_id)
        if amount <= 0:
            raise ValueError("amount must be positive")
        entry = PointsHistoryEntry(
            user_id=user_id,
            delta=-int(amount),
            reason=reason,
            description=description,
        )
        balance = self._store.append_history(entry)
        logger.info(
            "Deducted points user=%s amount=%d reason=%s balance=%d",
            user_id,
            amount,
            reason,
            balance,
        )
        return balance

    def balance(self, user_id: str) -> int:
        return self._store.get_balance(_require_user(user_id))

    def history(self, user_id: str, limit: int | None = 10) -> List[PointsHistoryEntry]:
        return self._store.list_history(_require_user(user_id), limit)

    def verify_balance(self, user_id: str) -> bool:
        """Check that the stored balance equals the sum of the history deltas."""
        user_id = _require_user(user_id)
        balance = self._store.get_balance(user_id)
        total = sum(entry.delta for entry in self._store.list_history(user_id, None))
        if total != balance:
            logger.warning(
                "Ledger inconsistency user=%s balance=%d history_total=%d",
                user_id,
                balance,
                total,
            )
        return total == balance


def _require_user(user_id: str | None) -> str:
    value = str(user_id or "").strip()
    if not value:
        raise ValueError("user_id is required")
    return value


__all__ = [
    "AwardResult",
    "CLASSIFICATION_REASON",
    "POINTS_FOR_CLASSIFICATION",
    "RewardLedger",
]
