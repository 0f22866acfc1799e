from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Mapping

import uvicorn
from dotenv import load_dotenv

from .config_loader import DEFAULT_CONFIG_PATH, AppConfig, load_config
from .logging_utils import install_tuning_log
from .server import create_app
from ..ai import ConsensusLabelSource, GeminiLabelSource, LabelSource, StaticLabelSource
from ..ai.keywords import load_scoring_config
from ..ledger.storage import FileSystemLedgerStore, LedgerStore
from ..ledger.supabase import SupabaseLedgerStore

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """The configured backends cannot be constructed."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the WasteSort classification API server",
        epilog=f"Configuration is loaded from {DEFAULT_CONFIG_PATH}. "
        "CLI arguments override config file settings.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Path to JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", type=str, default=None, help="Override server host")
    parser.add_argument("--port", type=int, default=None, help="Override server port")
    return parser


def _require_env(env: Mapping[str, str], name: str, purpose: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigurationError(f"Environment variable {name} must be set for {purpose}")
    return value


def build_label_source(cfg: AppConfig, env: Mapping[str, str] | None = None) -> LabelSource:
    env = os.environ if env is None else env
    settings = cfg.label_source
    if settings.backend == "static":
        logger.warning("Using static label source; predictions are fixed for every image")
        return StaticLabelSource.from_pairs(settings.static_labels)

    gemini = settings.gemini
    key = _require_env(env, gemini.api_key_env, "the Gemini label source")
    # A request must not outlive the submission that is waiting on it.
    timeout = min(gemini.timeout, cfg.pipeline.label_timeout_seconds)
    if timeout < gemini.timeout:
        logger.info(
            "Clamping Gemini timeout from %.1fs to label timeout %.1fs",
            gemini.timeout,
            timeout,
        )
    primary = GeminiLabelSource(
        api_key=key,
        model=gemini.model,
        base_url=gemini.base_url,
        timeout=timeout,
    )
    if settings.backend == "gemini":
        return primary
    secondary = GeminiLabelSource(
        api_key=key,
        model=gemini.secondary_model,
        base_url=gemini.base_url,
        timeout=timeout,
    )
    logger.info(
        "Label source consensus primary=%s secondary=%s", gemini.model, gemini.secondary_model
    )
    return ConsensusLabelSource(
        primary=primary,
        secondary=secondary,
        primary_label=gemini.model,
        secondary_label=gemini.secondary_model,
        timeout=timeout,
        max_workers=2 * cfg.pipeline.label_workers,
    )


def build_ledger_store(cfg: AppConfig, env: Mapping[str, str] | None = None) -> LedgerStore:
    env = os.environ if env is None else env
    settings = cfg.ledger
    if settings.backend == "supabase":
        url = _require_env(env, settings.supabase.url_env, "the Supabase ledger")
        key = _require_env(env, settings.supabase.key_env, "the Supabase ledger")
        return SupabaseLedgerStore(base_url=url, api_key=key, timeout=settings.supabase.timeout)
    path = Path(settings.path) if settings.path else None
    if path is None:
        logger.warning("Ledger path not set; balances are kept in memory only")
    return FileSystemLedgerStore(path)


def main() -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args()

    try:
        cfg = load_config(Path(args.config) if Path(args.config).exists() else None)
    except (OSError, ValueError) as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, cfg.logging.level, logging.INFO),
            format="%(levelname)s [%(name)s] %(message)s",
        )

    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port

    try:
        label_source = build_label_source(cfg)
        store = build_ledger_store(cfg)
        scoring_path = cfg.pipeline.scoring_config
        scoring = load_scoring_config(Path(scoring_path) if scoring_path else None)
    except (ConfigurationError, OSError, ValueError) as exc:
        logger.error("Failed to initialise service: %s", exc)
        sys.exit(1)

    if cfg.logging.tuning_log_enabled:
        install_tuning_log(
            output_dir=Path(cfg.logging.tuning_log_dir),
            window_seconds=cfg.logging.tuning_window_seconds,
            capacity=cfg.logging.tuning_capacity,
        )

    logger.info(
        "Server configuration host=%s port=%d label_backend=%s ledger_backend=%s top_k=%d",
        cfg.server.host,
        cfg.server.port,
        cfg.label_source.backend,
        cfg.ledger.backend,
        cfg.pipeline.top_k,
    )

    app = create_app(
        label_source=label_source,
        ledger_store=store,
        scoring=scoring,
        award_points=cfg.ledger.award_points,
        top_k=cfg.pipeline.top_k,
        label_timeout_seconds=cfg.pipeline.label_timeout_seconds,
        label_workers=cfg.pipeline.label_workers,
    )
    try:
        uvicorn.run(
            app,
            host=cfg.server.host,
            port=cfg.server.port,
            log_level=cfg.logging.level.lower(),
        )
    finally:
        app.state.service.shutdown()
        logging.shutdown()


if __name__ == "__main__":
    main()
