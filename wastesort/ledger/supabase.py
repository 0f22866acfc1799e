from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .records import (
    ClassificationRecord,
    InsufficientPointsError,
    LedgerError,
    LedgerWriteError,
    PointsHistoryEntry,
)

logger = logging.getLogger(__name__)

# Raised by apply_points_entry() in sql/ledger_schema.sql.
_INSUFFICIENT_POINTS_MESSAGE = "insufficient_points"


@dataclass
class SupabaseLedgerStore:
    """Ledger store backed by Supabase tables through the PostgREST API.

    The award and points-entry steps run inside SQL functions so each is a
    single transaction on the database side.
    """

    base_url: str
    api_key: str
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, str] | None = None,
        payload: Dict[str, Any] | None = None,
        write: bool = False,
    ) -> Any:
        url = f"{self.base_url.rstrip('/')}/rest/v1/{path.lstrip('/')}"
        error_type = LedgerWriteError if write else LedgerError
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise error_type(f"Timed out calling ledger store {path}") from exc
        except requests.RequestException as exc:
            raise error_type(f"Failed to reach ledger store: {exc}") from exc

        if response.status_code >= 400:
            detail = _error_message(response)
            if _INSUFFICIENT_POINTS_MESSAGE in detail:
                raise _insufficient_from_detail(payload)
            logger.error(
                "Ledger store request failed path=%s status=%d detail=%s",
                path,
                response.status_code,
                detail,
            )
            raise error_type(
                f"Ledger store returned {response.status_code} for {path}: {detail}"
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise error_type(f"Ledger store returned invalid JSON for {path}") from exc

    def get_record(self, fingerprint: str) -> Optional[ClassificationRecord]:
        rows = self._request(
            "GET",
            "classification_records",
            params={"fingerprint": f"eq.{fingerprint}", "select": "*", "limit": "1"},
        )
        if not rows:
            return None
        return ClassificationRecord.from_dict(rows[0])

    def exists_record(self, fingerprint: str) -> bool:
        return self.get_record(fingerprint) is not None

    def insert_record_and_credit(
        self, record: ClassificationRecord, entry: PointsHistoryEntry
    ) -> bool:
        result = self._request(
            "POST",
            "rpc/award_classification",
            payload={
                "p_fingerprint": record.fingerprint,
                "p_user_id": record.user_id,
                "p_category": record.category,
                "p_confidence": record.confidence_of_top,
                "p_points": entry.delta,
                "p_reason": entry.reason,
                "p_description": entry.description,
            },
            write=True,
        )
        return bool(result)

    def append_history(self, entry: PointsHistoryEntry) -> int:
        result = self._request(
            "POST",
            "rpc/apply_points_entry",
            payload={
                "p_user_id": entry.user_id,
                "p_delta": entry.delta,
                "p_reason": entry.reason,
                "p_description": entry.description,
            },
            write=True,
        )
        try:
            return int(result)
        except (TypeError, ValueError) as exc:
            raise LedgerWriteError("apply_points_entry returned no balance") from exc

    def get_balance(self, user_id: str) -> int:
        rows = self._request(
            "GET",
            "user_points",
            params={"user_id": f"eq.{user_id}", "select": "total_points"},
        )
        if not rows:
            return 0
        return int(rows[0].get("total_points") or 0)

    def list_history(
        self, user_id: str, limit: int | None = None
    ) -> List[PointsHistoryEntry]:
        params = {
            "user_id": f"eq.{user_id}",
            "select": "*",
            "order": "created_at.desc",
        }
        if limit is not None:
            params["limit"] = str(max(0, limit))
        rows = self._request("GET", "points_history", params=params) or []
        return [PointsHistoryEntry.from_dict(row) for row in rows]


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or ""
    if isinstance(body, dict):
        return str(body.get("message") or body.get("hint") or body)
    return str(body)


def _insufficient_from_detail(payload: Dict[str, Any] | None) -> InsufficientPointsError:
    payload = payload or {}
    requested = -int(payload.get("p_delta") or 0)
    return InsufficientPointsError(str(payload.get("p_user_id", "")), 0, requested)


__all__ = ["SupabaseLedgerStore"]
