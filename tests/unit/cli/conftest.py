"""CLI fixtures: run every command offline from a clean working directory."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _offline_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MNEMOS_EMBEDDING_PROVIDER", "stub")
    monkeypatch.delenv("MNEMOS_EMBEDDING_MODEL", raising=False)
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.setattr("mnemos.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml")
