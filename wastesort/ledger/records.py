from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict


class LedgerError(RuntimeError):
    """Base error for reward ledger failures."""


class LedgerWriteError(LedgerError):
    """The durable store rejected or could not complete a write."""


class InsufficientPointsError(LedgerError):
    def __init__(self, user_id: str, balance: int, requested: int) -> None:
        super().__init__(
            f"User {user_id} has {balance} point(s); {requested} requested"
        )
        self.user_id = user_id
        self.balance = balance
        self.requested = requested


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ClassificationRecord:
    fingerprint: str
    user_id: str
    category: str
    confidence_of_top: float = 0.0
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "user_id": self.user_id,
            "category": self.category,
            "confidence_of_top": self.confidence_of_top,
            "created_at": self.created_at.astimezone(timezone.utc).isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ClassificationRecord":
        return cls(
            fingerprint=str(payload["fingerprint"]),
            user_id=str(payload["user_id"]),
            category=str(payload["category"]),
            confidence_of_top=float(payload.get("confidence_of_top") or 0.0),
            created_at=_parse_timestamp(payload.get("created_at") or _utcnow()),
        )


@dataclass(frozen=True)
class PointsHistoryEntry:
    user_id: str
    delta: int
    reason: str
    description: str | None = None
    fingerprint: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "delta": self.delta,
            "reason": self.reason,
            "description": self.description,
            "fingerprint": self.fingerprint,
            "created_at": self.created_at.astimezone(timezone.utc).isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "PointsHistoryEntry":
        # Supabase rows name these columns points and action.
        delta = payload.get("delta", payload.get("points", 0))
        reason = payload.get("reason", payload.get("action", ""))
        return cls(
            user_id=str(payload["user_id"]),
            delta=int(delta),
            reason=str(reason),
            description=payload.get("description"),
            fingerprint=payload.get("fingerprint"),
            created_at=_parse_timestamp(payload.get("created_at") or _utcnow()),
        )


__all__ = [
    "ClassificationRecord",
    "InsufficientPointsError",
    "LedgerError",
    "LedgerWriteError",
    "PointsHistoryEntry",
]
