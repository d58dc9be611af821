"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from mnemos.db.connection import Database
from mnemos.db.repository import Repository
from mnemos.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "mnemos.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)
