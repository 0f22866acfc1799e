"""Application configuration for the WasteSort service.

Settings are read from a JSON file (``config/wastesort.json`` by default).
Every section has defaults, so a missing file yields a development setup:
static labels, a file-backed ledger under ``data/`` and tuning logs enabled.

Secrets are never stored in the file. The Gemini and Supabase sections only
name the environment variables that hold the keys.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/wastesort.json")

LABEL_BACKENDS = ("static", "gemini", "consensus")
LEDGER_BACKENDS = ("filesystem", "supabase")


@dataclass
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class GeminiSettings:
    api_key_env: str = "GEMINI_API_KEY"
    model: str = "models/gemini-2.5-flash"
    secondary_model: str = "models/gemini-2.5-flash-lite"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 20.0


@dataclass
class LabelSourceSettings:
    backend: str = "static"
    gemini: GeminiSettings = field(default_factory=GeminiSettings)
    static_labels: list[list[Any]] = field(default_factory=list)


@dataclass
class PipelineSettings:
    top_k: int = 15
    label_timeout_seconds: float = 10.0
    label_workers: int = 16
    scoring_config: str | None = None


@dataclass
class SupabaseSettings:
    url_env: str = "SUPABASE_URL"
    key_env: str = "SUPABASE_SERVICE_KEY"
    timeout: float = 10.0


@dataclass
class LedgerSettings:
    backend: str = "filesystem"
    path: str | None = "data/ledger.json"
    award_points: int = 5
    supabase: SupabaseSettings = field(default_factory=SupabaseSettings)


@dataclass
class LoggingSettings:
    level: str = "INFO"
    tuning_log_enabled: bool = True
    tuning_log_dir: str = "data/tuning_logs"
    tuning_capacity: int = 200
    tuning_window_seconds: float = 3600.0


@dataclass
class AppConfig:
    server: ServerSettings = field(default_factory=ServerSettings)
    label_source: LabelSourceSettings = field(default_factory=LabelSourceSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AppConfig":
        if not isinstance(payload, dict):
            raise ValueError("Configuration root must be a JSON object")

        server = _section(payload, "server")
        label = _section(payload, "label_source")
        gemini = _section(label, "gemini")
        pipeline = _section(payload, "pipeline")
        ledger = _section(payload, "ledger")
        supabase = _section(ledger, "supabase")
        log = _section(payload, "logging")

        defaults = cls()
        label_backend = str(label.get("backend", defaults.label_source.backend)).lower()
        if label_backend not in LABEL_BACKENDS:
            raise ValueError(f"Unknown label_source.backend: {label_backend!r}")
        ledger_backend = str(ledger.get("backend", defaults.ledger.backend)).lower()
        if ledger_backend not in LEDGER_BACKENDS:
            raise ValueError(f"Unknown ledger.backend: {ledger_backend!r}")

        static_labels = label.get("static_labels", [])
        if not isinstance(static_labels, list) or any(
            not isinstance(pair, (list, tuple)) or len(pair) != 2 for pair in static_labels
        ):
            raise ValueError("label_source.static_labels must be a list of [label, confidence]")

        award_points = _int(ledger.get("award_points"), defaults.ledger.award_points)
        if award_points <= 0:
            raise ValueError("ledger.award_points must be positive")

        return cls(
            server=ServerSettings(
                host=str(server.get("host", defaults.server.host)),
                port=_int(server.get("port"), defaults.server.port),
            ),
            label_source=LabelSourceSettings(
                backend=label_backend,
                gemini=GeminiSettings(
                    api_key_env=str(gemini.get("api_key_env", GeminiSettings.api_key_env)),
                    model=str(gemini.get("model", GeminiSettings.model)),
                    secondary_model=str(
                        gemini.get("secondary_model", GeminiSettings.secondary_model)
                    ),
                    base_url=str(gemini.get("base_url", GeminiSettings.base_url)),
                    timeout=_float(gemini.get("timeout"), GeminiSettings.timeout, minimum=1.0),
                ),
                static_labels=[list(pair) for pair in static_labels],
            ),
            pipeline=PipelineSettings(
                top_k=max(1, _int(pipeline.get("top_k"), defaults.pipeline.top_k)),
                label_timeout_seconds=_float(
                    pipeline.get("label_timeout_seconds"),
                    defaults.pipeline.label_timeout_seconds,
                    minimum=0.1,
                ),
                label_workers=max(
                    1, _int(pipeline.get("label_workers"), defaults.pipeline.label_workers)
                ),
                scoring_config=_optional_str(pipeline.get("scoring_config")),
            ),
            ledger=LedgerSettings(
                backend=ledger_backend,
                path=_optional_str(ledger.get("path", defaults.ledger.path)),
                award_points=award_points,
                supabase=SupabaseSettings(
                    url_env=str(supabase.get("url_env", SupabaseSettings.url_env)),
                    key_env=str(supabase.get("key_env", SupabaseSettings.key_env)),
                    timeout=_float(
                        supabase.get("timeout"), SupabaseSettings.timeout, minimum=1.0
                    ),
                ),
            ),
            logging=LoggingSettings(
                level=str(log.get("level", defaults.logging.level)).upper(),
                tuning_log_enabled=bool(
                    log.get("tuning_log_enabled", defaults.logging.tuning_log_enabled)
                ),
                tuning_log_dir=str(log.get("tuning_log_dir", defaults.logging.tuning_log_dir)),
                tuning_capacity=max(
                    1, _int(log.get("tuning_capacity"), defaults.logging.tuning_capacity)
                ),
                tuning_window_seconds=_float(
                    log.get("tuning_window_seconds"),
                    defaults.logging.tuning_window_seconds,
                    minimum=0.0,
                ),
            ),
        )


def _section(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Configuration section {key!r} must be an object")
    return value


def _int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected an integer, got {value!r}") from exc


def _float(value: Any, default: float, minimum: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected a number, got {value!r}") from exc
    return max(minimum, parsed)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_config(path: Path | None = None) -> AppConfig:
    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        logger.info("No config file at %s; using defaults", config_path)
        return AppConfig()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file {config_path} is not valid JSON: {exc}") from exc
    config = AppConfig.from_dict(data)
    logger.info(
        "Loaded config path=%s label_backend=%s ledger_backend=%s",
        config_path,
        config.label_source.backend,
        config.ledger.backend,
    )
    return config


__all__ = [
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "GeminiSettings",
    "LabelSourceSettings",
    "LedgerSettings",
    "LoggingSettings",
    "PipelineSettings",
    "ServerSettings",
    "SupabaseSettings",
    "load_config",
]
