"""Tests for mnemos config loader."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from mnemos.config import (
    ConfigError,
    EmbeddingCfg,
    MnemosConfig,
    RetrievalCfg,
    load_config,
    validate,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("MNEMOS_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("MNEMOS_EMBEDDING_PROVIDER", raising=False)


def _missing_global(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent" / "config.yaml"


# ---------------------------------------------------------------------------
# Defaults, no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    cfg = load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))

    assert cfg.embedding.provider == "remote"
    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.chunking.max_chars == 1_200
    assert cfg.chunking.overlap == 150
    assert cfg.retrieval.top_k == 5
    assert cfg.retrieval.lexical_weight == 0.3
    assert cfg.retrieval.vector_weight == 0.7
    assert cfg.assembly.default_budget == 6_000
    assert cfg.assembly.complex_budget == 12_000
    assert cfg.indexer.max_attempts == 3
    assert cfg.ingest.max_document_bytes == 30 * 1024 * 1024


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"model": "ollama/nomic-embed-text"}})

    cfg = load_config(project_dir=tmp_path / "proj", global_config_path=global_cfg)
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.embedding.timeout == 30.0


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path / "proj", global_config_path=global_cfg)
    assert cfg == MnemosConfig()


def test_load_config_global_api_key_forbidden(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"api_key": "sk-nope"}})

    with pytest.raises(ConfigError, match="embedding.api_key"):
        load_config(project_dir=tmp_path / "proj", global_config_path=global_cfg)


def test_budget_keys_are_not_mistaken_for_secrets(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"assembly": {"default_budget": 4000}})

    cfg = load_config(project_dir=tmp_path / "proj", global_config_path=global_cfg)
    assert cfg.assembly.default_budget == 4000


# ---------------------------------------------------------------------------
# Project config
# ---------------------------------------------------------------------------


def test_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"chunking": {"max_chars": 800, "overlap": 100}})
    proj = tmp_path / "proj"
    proj.mkdir()
    _write_yaml(proj / "mnemos.yaml", {"chunking": {"overlap": 50}})

    cfg = load_config(project_dir=proj, global_config_path=global_cfg)
    assert cfg.chunking.max_chars == 800
    assert cfg.chunking.overlap == 50


def test_project_may_set_all_sections(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "mnemos.yaml",
        {
            "embedding": {"provider": "stub", "dimensions": 32},
            "ingest": {"max_pages": 10},
            "indexer": {"workers": 2, "batch_size": 4},
            "retrieval": {"top_k": 9, "lexical_weight": 0.5, "vector_weight": 0.5},
            "assembly": {"complex_budget": 20000},
        },
    )
    cfg = load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))

    assert cfg.embedding.provider == "stub"
    assert cfg.embedding.dimensions == 32
    assert cfg.ingest.max_pages == 10
    assert cfg.indexer.workers == 2
    assert cfg.indexer.batch_size == 4
    assert cfg.retrieval.top_k == 9
    assert cfg.retrieval.lexical_weight == 0.5
    assert cfg.assembly.complex_budget == 20000


def test_retrieval_switches(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "mnemos.yaml",
        {"retrieval": {"temporal_filter": False, "track_access": False}},
    )
    cfg = load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))

    assert cfg.retrieval.temporal_filter is False
    assert cfg.retrieval.track_access is False
    assert cfg.retrieval.top_k == 5
    assert RetrievalCfg().temporal_filter is True


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "mnemos.yaml", {"generation": {"model": "x"}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))

    assert any("generation" in str(w.message) for w in caught)


def test_non_numeric_value_raises_config_error(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "mnemos.yaml", {"chunking": {"max_chars": "lots"}})

    with pytest.raises(ConfigError, match="Invalid config value"):
        load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "mnemos.yaml", {"embedding": {"model": "openai/a"}})
    monkeypatch.setenv("MNEMOS_EMBEDDING_MODEL", "openai/b")
    monkeypatch.setenv("MNEMOS_EMBEDDING_PROVIDER", "stub")

    cfg = load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))
    assert cfg.embedding.model == "openai/b"
    assert cfg.embedding.provider == "stub"


def test_env_provider_is_validated(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("MNEMOS_EMBEDDING_PROVIDER", "carrier-pigeon")

    with pytest.raises(ConfigError, match="embedding.provider"):
        load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))


# ---------------------------------------------------------------------------
# validate()
# ---------------------------------------------------------------------------


def test_validate_accepts_defaults() -> None:
    validate(MnemosConfig())


@pytest.mark.parametrize(
    "cfg",
    [
        MnemosConfig(embedding=EmbeddingCfg(dimensions=0)),
        MnemosConfig(retrieval=RetrievalCfg(lexical_weight=-0.1)),
        MnemosConfig(retrieval=RetrievalCfg(lexical_weight=0.0, vector_weight=0.0)),
    ],
)
def test_validate_rejects_bad_values(cfg: MnemosConfig) -> None:
    with pytest.raises(ConfigError):
        validate(cfg)


def test_validate_rejects_zero_chunk_size(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "mnemos.yaml", {"chunking": {"max_chars": 0}})

    with pytest.raises(ConfigError, match="max_chars"):
        load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))


def test_validate_rejects_zero_workers(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "mnemos.yaml", {"indexer": {"workers": 0}})

    with pytest.raises(ConfigError, match="workers"):
        load_config(project_dir=tmp_path, global_config_path=_missing_global(tmp_path))
