"""Tests for the forward-only migration runner."""

from __future__ import annotations

from mnemos.db.connection import Database
from mnemos.db.migrations import MIGRATIONS, current_version, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _exists(conn, name: str, kind: str = "table") -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = ? AND name = ?", (kind, name)
    ).fetchone() is not None


# --- Bootstrap ---

def test_fresh_database_is_version_zero(tmp_path):
    conn = _fresh_conn(tmp_path)
    conn.execute("CREATE TABLE schema_version (version INTEGER NOT NULL, applied_at DATETIME)")
    assert current_version(conn) == 0
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert current_version(conn) == MIGRATIONS[-1][0]
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


def test_versions_strictly_ascending():
    versions = [v for v, _ in MIGRATIONS]
    assert versions == sorted(set(versions))


# --- Objects created ---

def test_tables_created(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    for table in ("index_records", "content_units", "chunks", "chunks_fts", "index_jobs", "change_log"):
        assert _exists(conn, table), table
    conn.close()


def test_fts_triggers_created(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    for trigger in ("chunks_fts_ai", "chunks_fts_ad", "chunks_fts_au"):
        assert _exists(conn, trigger, "trigger"), trigger
    conn.close()


# --- Upgrades ---

def test_version_one_database_gains_unit_metadata(tmp_path):
    conn = _fresh_conn(tmp_path)
    conn.execute("CREATE TABLE schema_version (version INTEGER NOT NULL, applied_at DATETIME)")
    conn.executescript(MIGRATIONS[0][1])
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.execute(
        "INSERT INTO index_records (id, scope_id, display_name, source_kind, created_at, updated_at) "
        "VALUES ('r1', 's1', 'old', 'MEMORY', 't', 't')"
    )
    conn.execute(
        "INSERT INTO content_units (id, record_id, scope_id, source_kind, raw_text, created_at) "
        "VALUES ('u1', 'r1', 's1', 'MEMORY', 'hello', 't')"
    )
    conn.commit()

    run_migrations(conn)

    row = conn.execute("SELECT metadata, last_accessed_at FROM content_units WHERE id = 'u1'").fetchone()
    assert row["metadata"] == "{}"
    assert row["last_accessed_at"] is None
    assert current_version(conn) == MIGRATIONS[-1][0]
    conn.close()
