from __future__ import annotations

import json

import pytest

from wastesort.ai.consensus import ConsensusLabelSource
from wastesort.ai.gemini_client import GeminiLabelSource
from wastesort.ai.static import StaticLabelSource
from wastesort.api.config_loader import AppConfig, load_config
from wastesort.api.main import ConfigurationError, build_label_source, build_ledger_store
from wastesort.ledger.storage import FileSystemLedgerStore
from wastesort.ledger.supabase import SupabaseLedgerStore


def test_defaults_when_payload_is_empty() -> None:
    config = AppConfig.from_dict({})
    assert config == AppConfig()
    assert config.server.port == 8000
    assert config.label_source.backend == "static"
    assert config.pipeline.top_k == 15
    assert config.ledger.award_points == 5


def test_sections_override_defaults(tmp_path) -> None:
    path = tmp_path / "wastesort.json"
    path.write_text(
        json.dumps(
            {
                "server": {"port": 9001},
                "label_source": {
                    "backend": "Consensus",
                    "gemini": {"model": "models/custom", "timeout": 0.1},
                },
                "pipeline": {"top_k": 5, "label_timeout_seconds": 2.5},
                "ledger": {"backend": "supabase", "path": None},
                "logging": {"level": "debug", "tuning_log_enabled": False},
            }
        ),
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.server.port == 9001
    assert config.label_source.backend == "consensus"
    assert config.label_source.gemini.model == "models/custom"
    assert config.label_source.gemini.timeout == 1.0
    assert config.pipeline.top_k == 5
    assert config.pipeline.label_timeout_seconds == 2.5
    assert config.ledger.backend == "supabase"
    assert config.ledger.path is None
    assert config.logging.level == "DEBUG"
    assert config.logging.tuning_log_enabled is False


@pytest.mark.parametrize(
    "payload",
    [
        {"label_source": {"backend": "tensorflow"}},
        {"ledger": {"backend": "redis"}},
        {"ledger": {"award_points": 0}},
        {"server": "localhost"},
        {"server": {"port": "eighty"}},
        {"label_source": {"static_labels": [["only-label"]]}},
    ],
)
def test_invalid_config_is_rejected(payload) -> None:
    with pytest.raises(ValueError):
        AppConfig.from_dict(payload)


def test_missing_default_file_uses_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert load_config(None) == AppConfig()


def test_missing_explicit_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.json")


def test_invalid_json_raises(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_build_label_source_per_backend() -> None:
    config = AppConfig.from_dict(
        {"label_source": {"static_labels": [["tin can", 0.9]]}}
    )
    source = build_label_source(config, env={})
    assert isinstance(source, StaticLabelSource)
    assert source.classify(b"img", 5)[0].label == "tin can"

    config.label_source.backend = "gemini"
    with pytest.raises(ConfigurationError):
        build_label_source(config, env={})
    gemini = build_label_source(config, env={"GEMINI_API_KEY": "key"})
    assert isinstance(gemini, GeminiLabelSource)
    assert gemini.api_key == "key"

    config.label_source.backend = "consensus"
    consensus = build_label_source(config, env={"GEMINI_API_KEY": "key"})
    assert isinstance(consensus, ConsensusLabelSource)
    assert consensus.secondary.model == config.label_source.gemini.secondary_model


def test_gemini_timeout_is_clamped_to_label_timeout() -> None:
    config = AppConfig.from_dict(
        {
            "label_source": {"backend": "consensus", "gemini": {"timeout": 20}},
            "pipeline": {"label_timeout_seconds": 4, "label_workers": 3},
        }
    )
    assert config.pipeline.label_workers == 3
    consensus = build_label_source(config, env={"GEMINI_API_KEY": "key"})
    assert consensus.timeout == 4.0
    assert consensus.primary.timeout == 4.0
    assert consensus.secondary.timeout == 4.0

    config.label_source.gemini.timeout = 2.0
    config.label_source.backend = "gemini"
    assert build_label_source(config, env={"GEMINI_API_KEY": "key"}).timeout == 2.0


def test_build_ledger_store_per_backend(tmp_path) -> None:
    config = AppConfig()
    config.ledger.path = str(tmp_path / "ledger.json")
    store = build_ledger_store(config, env={})
    assert isinstance(store, FileSystemLedgerStore)
    assert store.path == tmp_path / "ledger.json"

    config.ledger.backend = "supabase"
    with pytest.raises(ConfigurationError):
        build_ledger_store(config, env={"SUPABASE_URL": "https://db.example"})
    remote = build_ledger_store(
        config, env={"SUPABASE_URL": "https://db.example", "SUPABASE_SERVICE_KEY": "k"}
    )
    assert isinstance(remote, SupabaseLedgerStore)
    assert remote.base_url == "https://db.example"
