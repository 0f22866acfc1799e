from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .records import (
    ClassificationRecord,
    InsufficientPointsError,
    LedgerError,
    LedgerWriteError,
    PointsHistoryEntry,
)

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    def get_record(self, fingerprint: str) -> Optional[ClassificationRecord]: ...

    def exists_record(self, fingerprint: str) -> bool: ...

    def insert_record_and_credit(
        self, record: ClassificationRecord, entry: PointsHistoryEntry
    ) -> bool: ...

    def append_history(self, entry: PointsHistoryEntry) -> int: ...

    def get_balance(self, user_id: str) -> int: ...

    def list_history(
        self, user_id: str, limit: int | None = None
    ) -> List[PointsHistoryEntry]: ...


class FileSystemLedgerStore:
    """Ledger kept in memory under a lock and persisted to a JSON file."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._records: Dict[str, ClassificationRecord] = {}
        self._balances: Dict[str, int] = {}
        self._history: List[PointsHistoryEntry] = []
        if self._path is not None:
            self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            records = [ClassificationRecord.from_dict(item) for item in data.get("records", [])]
            history = [PointsHistoryEntry.from_dict(item) for item in data.get("history", [])]
            balances = {str(k): int(v) for k, v in data.get("balances", {}).items()}
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise LedgerError(f"Ledger file {self._path} is unreadable: {exc}") from exc
        self._records = {record.fingerprint: record for record in records}
        self._history = history
        self._balances = balances
        logger.info(
            "Loaded ledger from %s records=%d users=%d history=%d",
            self._path,
            len(self._records),
            len(self._balances),
            len(self._history),
        )

    def _save(self) -> None:
        if self._path is None:
            return
        payload = {
            "records": [record.to_dict() for record in self._records.values()],
            "balances": dict(sorted(self._balances.items())),
            "history": [entry.to_dict() for entry in self._history],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def _commit(self, rollback) -> None:
        try:
            self._save()
        except OSError as exc:
            rollback()
            logger.error("Failed to persist ledger to %s: %s", self._path, exc)
            raise LedgerWriteError(f"Failed to persist ledger: {exc}") from exc

    def get_record(self, fingerprint: str) -> Optional[ClassificationRecord]:
        with self._lock:
            return self._records.get(fingerprint)

    def exists_record(self, fingerprint: str) -> bool:
        with self._lock:
            return fingerprint in self._records

    def insert_record_and_credit(
        self, record: ClassificationRecord, entry: PointsHistoryEntry
    ) -> bool:
        with self._lock:
            if record.fingerprint in self._records:
                return False
            previous = self._balances.get(entry.user_id)
            self._records[record.fingerprint] = record
            self._balances[entry.user_id] = (previous or 0) + entry.delta
            self._history.append(entry)

            def rollback() -> None:
                self._records.pop(record.fingerprint, None)
                self._history.pop()
                if previous is None:
                    self._balances.pop(entry.user_id, None)
                else:
                    self._balances[entry.user_id] = previous

            self._commit(rollback)
            return True

    def append_history(self, entry: PointsHistoryEntry) -> int:
        with self._lock:
            previous = self._balances.get(entry.user_id)
            new_balance = (previous or 0) + entry.delta
            if new_balance < 0:
                raise InsufficientPointsError(entry.user_id, previous or 0, -entry.delta)
            self._balances[entry.user_id] = new_balance
            self._history.append(entry)

            def rollback() -> None:
                self._history.pop()
                if previous is None:
                    self._balances.pop(entry.user_id, None)
                else:
                    self._balances[entry.user_id] = previous

            self._commit(rollback)
            return new_balance

    def get_balance(self, user_id: str) -> int:
        with self._lock:
            return self._balances.get(user_id, 0)

    def list_history(
        self, user_id: str, limit: int | None = None
    ) -> List[PointsHistoryEntry]:
        with self._lock:
            entries = [entry for entry in reversed(self._history) if entry.user_id == user_id]
        if limit is not None:
            entries = entries[: max(0, limit)]
        return entries


__all__ = ["FileSystemLedgerStore", "LedgerStore"]
