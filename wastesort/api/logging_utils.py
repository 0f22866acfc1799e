from __future__ import annotations

import json
import logging
import threading
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Optional


class TuningLogBufferHandler(logging.Handler):
    """Collect ambiguous-classification records and persist them as JSON lines.

    Only records carrying a ``tuning`` mapping (passed via ``extra=``) are kept.
    The buffer is written when it reaches ``capacity``, when ``window_seconds``
    have passed since the first buffered record, or on ``flush``/``close``.
    """

    def __init__(
        self,
        output_dir: Path,
        window_seconds: float = 3600.0,
        capacity: int = 200,
    ) -> None:
        super().__init__()
        self._output_dir = output_dir
        self._window_seconds = max(0.0, window_seconds)
        self._capacity = max(1, capacity)
        self._buffer: list[dict[str, Any]] = []
        self._first_buffered: Optional[float] = None
        self._lock = threading.Lock()
        self._file_path: Optional[Path] = None
        self._logger = logging.getLogger(__name__)

    @property
    def file_path(self) -> Optional[Path]:
        with self._lock:
            return self._file_path

    def emit(self, record: logging.LogRecord) -> None:
        payload = getattr(record, "tuning", None)
        if not isinstance(payload, dict):
            return
        try:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
                "logger": record.name,
                "message": record.getMessage(),
                **payload,
            }
        except Exception:
            self.handleError(record)
            return
        path: Optional[Path] = None
        with self._lock:
            now = time.monotonic()
            if self._first_buffered is None:
                self._first_buffered = now
            self._buffer.append(entry)
            if (
                len(self._buffer) >= self._capacity
                or now - self._first_buffered >= self._window_seconds
            ):
                path = self._flush_locked()
        if path is not None:
            self._logger.debug("Tuning records written to %s", path)

    def flush(self) -> None:
        with self._lock:
            path = self._flush_locked()
        if path is not None:
            self._logger.debug("Tuning records written to %s", path)

    def close(self) -> None:
        try:
            self.flush()
        finally:
            super().close()

    def _flush_locked(self) -> Optional[Path]:
        self._first_buffered = None
        if not self._buffer:
            return None
        self._output_dir.mkdir(parents=True, exist_ok=True)
        day = datetime.now(UTC).strftime("%Y%m%d")
        self._file_path = self._output_dir / f"tuning_{day}.jsonl"
        lines = "".join(
            json.dumps(entry, sort_keys=True, default=str) + "\n" for entry in self._buffer
        )
        self._buffer.clear()
        with self._file_path.open("a", encoding="utf-8") as handle:
            handle.write(lines)
        return self._file_path


def install_tuning_log(
    output_dir: Path | None = None,
    window_seconds: float = 3600.0,
    capacity: int = 200,
    logger_name: str = "wastesort",
) -> TuningLogBufferHandler:
    handler = TuningLogBufferHandler(
        output_dir=output_dir or Path("data/tuning_logs"),
        window_seconds=window_seconds,
        capacity=capacity,
    )
    handler.setLevel(logging.INFO)
    target = logging.getLogger(logger_name)
    if target.getEffectiveLevel() > logging.INFO:
        target.setLevel(logging.INFO)
    target.addHandler(handler)
    logging.getLogger(__name__).info(
        "Tuning log enabled dir=%s capacity=%d window=%.0fs",
        handler._output_dir,
        capacity,
        window_seconds,
    )
    return handler


__all__ = ["TuningLogBufferHandler", "install_tuning_log"]
