"""Forward-only migration runner for the mnemos store."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS index_records (
    id              TEXT PRIMARY KEY,
    scope_id        TEXT NOT NULL,
    display_name    TEXT NOT NULL,
    source_kind     TEXT NOT NULL CHECK (source_kind IN ('MEMORY', 'DOCUMENT')),
    status          TEXT NOT NULL DEFAULT 'PENDING'
                    CHECK (status IN ('PENDING', 'INDEXING', 'READY', 'FAILED')),
    total_chunks    INTEGER NOT NULL DEFAULT 0,
    indexed_chunks  INTEGER NOT NULL DEFAULT 0,
    size_bytes      INTEGER NOT NULL DEFAULT 0,
    page_count      INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    indexed_at      TEXT
);

CREATE INDEX IF NOT EXISTS idx_index_records_scope
    ON index_records (scope_id, status);

CREATE TABLE IF NOT EXISTS content_units (
    id              TEXT PRIMARY KEY,
    record_id       TEXT NOT NULL REFERENCES index_records(id) ON DELETE CASCADE,
    scope_id        TEXT NOT NULL,
    source_kind     TEXT NOT NULL,
    page_number     INTEGER,
    raw_text        TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_content_units_record
    ON content_units (record_id, page_number);
CREATE INDEX IF NOT EXISTS idx_content_units_scope
    ON content_units (scope_id);

CREATE TABLE IF NOT EXISTS chunks (
    id              INTEGER PRIMARY KEY,
    parent_id       TEXT NOT NULL REFERENCES content_units(id) ON DELETE CASCADE,
    record_id       TEXT NOT NULL,
    scope_id        TEXT NOT NULL,
    page_number     INTEGER,
    sequence_index  INTEGER NOT NULL,
    text            TEXT NOT NULL,
    char_start      INTEGER NOT NULL,
    char_end        INTEGER NOT NULL,
    created_at      TEXT NOT NULL,
    embedding_model TEXT,
    vector          BLOB,
    vector_scale    REAL,
    vector_dim      INTEGER,
    UNIQUE (parent_id, sequence_index)
);

CREATE INDEX IF NOT EXISTS idx_chunks_scope
    ON chunks (scope_id, record_id);

-- External-content FTS5 index over chunks.text, kept in sync by triggers so
-- that foreign-key cascades also clean it up.
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    text,
    content='chunks',
    content_rowid='id',
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS chunks_fts_ai AFTER INSERT ON chunks BEGIN
    INSERT INTO chunks_fts (rowid, text) VALUES (new.id, new.text);
END;

CREATE TRIGGER IF NOT EXISTS chunks_fts_ad AFTER DELETE ON chunks BEGIN
    INSERT INTO chunks_fts (chunks_fts, rowid, text) VALUES ('delete', old.id, old.text);
END;

CREATE TRIGGER IF NOT EXISTS chunks_fts_au AFTER UPDATE OF text ON chunks BEGIN
    INSERT INTO chunks_fts (chunks_fts, rowid, text) VALUES ('delete', old.id, old.text);
    INSERT INTO chunks_fts (rowid, text) VALUES (new.id, new.text);
END;

CREATE TABLE IF NOT EXISTS index_jobs (
    id              INTEGER PRIMARY KEY,
    record_id       TEXT NOT NULL REFERENCES index_records(id) ON DELETE CASCADE,
    scope_id        TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'PENDING'
                    CHECK (status IN ('PENDING', 'RUNNING', 'DONE', 'FAILED')),
    attempts        INTEGER NOT NULL DEFAULT 0,
    last_error      TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_index_jobs_status
    ON index_jobs (status, id);

CREATE TABLE IF NOT EXISTS change_log (
    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
    entity          TEXT NOT NULL,
    entity_id       TEXT NOT NULL,
    scope_id        TEXT NOT NULL,
    op              TEXT NOT NULL,
    payload         TEXT NOT NULL DEFAULT '{}',
    created_at      TEXT NOT NULL
);
"""

# Memory heuristics (kind, emotion, importance) and last-access tracking.
_V2_SQL = """
ALTER TABLE content_units ADD COLUMN metadata TEXT NOT NULL DEFAULT '{}';
ALTER TABLE content_units ADD COLUMN last_accessed_at TEXT;
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 for a fresh database)."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    current = current_version(conn)

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
