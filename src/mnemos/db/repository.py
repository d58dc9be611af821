"""Repository pattern for all mnemos store operations.

Single interface for: index records, content units, chunks with quantized
vectors, FTS5 search, the durable index-job queue and the change log.
Every write that touches more than one row runs inside one transaction, and
every ``sqlite3.Error`` surfaces as ``StoreError``.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from mnemos.db.models import (
    ALLOWED_TRANSITIONS,
    ChangeEvent,
    Chunk,
    ContentUnit,
    IndexJob,
    IndexRecord,
    IndexStatus,
    JobStatus,
    SourceKind,
)
from mnemos.errors import StoreError

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

_RECORD_COLS = (
    "id, scope_id, display_name, source_kind, status, total_chunks, indexed_chunks, "
    "size_bytes, page_count, error_message, created_at, updated_at, indexed_at"
)
_UNIT_COLS = (
    "id, record_id, scope_id, source_kind, page_number, raw_text, created_at, "
    "metadata, last_accessed_at"
)
_CHUNK_COLS = (
    "c.id, c.parent_id, c.record_id, c.scope_id, c.page_number, c.sequence_index, "
    "c.text, c.char_start, c.char_end, c.created_at, c.embedding_model, "
    "c.vector, c.vector_scale, c.vector_dim"
)
_JOB_COLS = "id, record_id, scope_id, status, attempts, last_error, created_at, updated_at"


def utc_now() -> str:
    """ISO-8601 UTC timestamp with microseconds (sorts lexically)."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def build_fts_query(text: str) -> str:
    """Turn free text into a safe FTS5 MATCH expression.

    Each word token is double-quoted and the tokens are OR-ed, so punctuation
    and FTS5 operators in user input never reach the parser. Returns "" when
    the text holds no word tokens.
    """
    tokens = _TOKEN_RE.findall(text)
    return " OR ".join(f'"{t}"' for t in tokens)


class Repository:
    """Data access layer for all mnemos entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller,
    must be closed after use and must not be shared between threads.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see mnemos.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block under ``BEGIN IMMEDIATE``; commit on success, roll back on error.

        A block entered while a transaction is already open joins it.
        """
        if self._conn.in_transaction:
            yield self._conn
            return
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StoreError(f"Could not start transaction: {exc}") from exc
        try:
            yield self._conn
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StoreError(f"Store write failed: {exc}") from exc
        except BaseException:
            self._conn.rollback()
            raise
        try:
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StoreError(f"Commit failed: {exc}") from exc

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Store read failed: {exc}") from exc

    def _log_change(
        self, entity: str, entity_id: str, scope_id: str, op: str, payload: dict[str, Any]
    ) -> None:
        self._conn.execute(
            """
            INSERT INTO change_log (entity, entity_id, scope_id, op, payload, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (entity, entity_id, scope_id, op, json.dumps(payload, sort_keys=True), utc_now()),
        )

    # ------------------------------------------------------------------
    # Index records + content units
    # ------------------------------------------------------------------

    def add_record(self, record: IndexRecord, units: Sequence[ContentUnit]) -> int:
        """Persist a PENDING record, its content units and one queued job atomically.

        Args:
            record: The IndexRecord to insert. Timestamps are filled in when
                missing.
            units: Content units owned by *record* (at least one).

        Returns:
            The id of the queued index job.
        """
        now = utc_now()
        record.created_at = record.created_at or now
        record.updated_at = now
        with self.transaction() as conn:
            conn.execute(
                f"INSERT INTO index_records ({_RECORD_COLS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.scope_id,
                    record.display_name,
                    record.source_kind.value,
                    record.status.value,
                    record.total_chunks,
                    record.indexed_chunks,
                    record.size_bytes,
                    record.page_count,
                    record.error_message,
                    record.created_at,
                    record.updated_at,
                    record.indexed_at,
                ),
            )
            self._log_change("index_record", record.id, record.scope_id, "insert", _record_payload(record))
            for unit in units:
                unit.created_at = unit.created_at or record.created_at
                conn.execute(
                    f"INSERT INTO content_units ({_UNIT_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        unit.id,
                        unit.record_id,
                        unit.scope_id,
                        unit.source_kind.value,
                        unit.page_number,
                        unit.raw_text,
                        unit.created_at,
                        json.dumps(unit.metadata, sort_keys=True),
                        unit.last_accessed_at,
                    ),
                )
                self._log_change(
                    "content_unit",
                    unit.id,
                    unit.scope_id,
                    "insert",
                    {
                        "record_id": unit.record_id,
                        "page_number": unit.page_number,
                        "metadata": unit.metadata,
                    },
                )
            return self._enqueue(record.id, record.scope_id)

    def get_record(self, record_id: str) -> IndexRecord | None:
        """Return an index record by ID, or None if not found."""
        rows = self._query(
            f"SELECT {_RECORD_COLS} FROM index_records WHERE id = ?", (record_id,)
        )
        return _row_to_record(rows[0]) if rows else None

    def list_records(
        self, scope_id: str | None = None, status: IndexStatus | None = None
    ) -> list[IndexRecord]:
        """Return records, newest first, optionally filtered by scope and status."""
        sql = f"SELECT {_RECORD_COLS} FROM index_records"
        clauses: list[str] = []
        params: list[Any] = []
        if scope_id is not None:
            clauses.append("scope_id = ?")
            params.append(scope_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, id"
        return [_row_to_record(r) for r in self._query(sql, params)]

    def transition(
        self,
        record_id: str,
        to_status: IndexStatus,
        *,
        total_chunks: int | None = None,
        error_message: str | None = None,
    ) -> IndexRecord:
        """Move a record to *to_status*, enforcing the forward-only state machine.

        Entering INDEXING resets progress and clears any previous error.
        Entering READY stamps ``indexed_at``.

        Raises:
            StoreError: If the record is missing or the transition is illegal.
        """
        with self.transaction() as conn:
            row = conn.execute(
                f"SELECT {_RECORD_COLS} FROM index_records WHERE id = ?", (record_id,)
            ).fetchone()
            if row is None:
                raise StoreError(f"Index record '{record_id}' not found")
            record = _row_to_record(row)
            if (record.status, to_status) not in ALLOWED_TRANSITIONS:
                raise StoreError(
                    f"Illegal status transition {record.status.value} -> {to_status.value} "
                    f"for record '{record_id}'"
                )

            now = utc_now()
            record.status = to_status
            record.updated_at = now
            if to_status == IndexStatus.INDEXING:
                record.indexed_chunks = 0
                record.error_message = None
            elif to_status == IndexStatus.READY:
                record.indexed_at = now
                record.error_message = None
            elif to_status == IndexStatus.FAILED:
                record.error_message = error_message
            if total_chunks is not None:
                record.total_chunks = total_chunks
                if to_status == IndexStatus.READY:
                    record.indexed_chunks = total_chunks

            conn.execute(
                """
                UPDATE index_records
                SET status = ?, total_chunks = ?, indexed_chunks = ?, error_message = ?,
                    updated_at = ?, indexed_at = ?
                WHERE id = ?
                """,
                (
                    record.status.value,
                    record.total_chunks,
                    record.indexed_chunks,
                    record.error_message,
                    record.updated_at,
                    record.indexed_at,
                    record_id,
                ),
            )
            self._log_change("index_record", record.id, record.scope_id, "update", _record_payload(record))
        return record

    def set_progress(self, record_id: str, indexed_chunks: int, total_chunks: int) -> None:
        """Record indexing progress for observers. Not written to the change log."""
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE index_records
                SET indexed_chunks = ?, total_chunks = ?, updated_at = ?
                WHERE id = ?
                """,
                (indexed_chunks, total_chunks, utc_now(), record_id),
            )

    def get_unit(self, unit_id: str) -> ContentUnit | None:
        """Return a content unit by ID, or None if not found."""
        rows = self._query(f"SELECT {_UNIT_COLS} FROM content_units WHERE id = ?", (unit_id,))
        return _row_to_unit(rows[0]) if rows else None

    def list_units(self, record_id: str) -> list[ContentUnit]:
        """Return the units of *record_id* in page order."""
        rows = self._query(
            f"SELECT {_UNIT_COLS} FROM content_units WHERE record_id = ? "
            "ORDER BY COALESCE(page_number, 0), id",
            (record_id,),
        )
        return [_row_to_unit(r) for r in rows]

    def touch_units(self, unit_ids: Sequence[str], when: str | None = None) -> int:
        """Stamp ``last_accessed_at`` on recalled units. Not written to the change log.

        Returns:
            Number of units updated.
        """
        ids = sorted(set(unit_ids))
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self.transaction() as conn:
            cur = conn.execute(
                f"UPDATE content_units SET last_accessed_at = ? WHERE id IN ({placeholders})",
                (when or utc_now(), *ids),
            )
            return cur.rowcount

    # ------------------------------------------------------------------
    # Deletes (cascade to units, chunks, FTS rows and jobs)
    # ------------------------------------------------------------------

    def delete_record(self, record_id: str) -> bool:
        """Delete a record and everything derived from it. Returns False if absent."""
        with self.transaction() as conn:
            return self._delete_record(conn, record_id)

    def delete_unit(self, unit_id: str) -> bool:
        """Delete a content unit together with its owning record.

        Pages of a document share one record, so removing any page removes
        the whole document. Returns False if the unit does not exist.
        """
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT record_id FROM content_units WHERE id = ?", (unit_id,)
            ).fetchone()
            if row is None:
                return False
            return self._delete_record(conn, row["record_id"])

    def delete_scope(self, scope_id: str) -> int:
        """Delete every record in *scope_id*. Returns the number of records removed."""
        with self.transaction() as conn:
            ids = [
                r["id"]
                for r in conn.execute(
                    "SELECT id FROM index_records WHERE scope_id = ?", (scope_id,)
                ).fetchall()
            ]
            for record_id in ids:
                self._delete_record(conn, record_id)
        return len(ids)

    def _delete_record(self, conn: sqlite3.Connection, record_id: str) -> bool:
        row = conn.execute(
            "SELECT scope_id FROM index_records WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            return False
        scope_id = row["scope_id"]
        for unit in conn.execute(
            "SELECT id FROM content_units WHERE record_id = ?", (record_id,)
        ).fetchall():
            self._log_change("content_unit", unit["id"], scope_id, "delete", {"record_id": record_id})
        conn.execute("DELETE FROM index_records WHERE id = ?", (record_id,))
        self._log_change("index_record", record_id, scope_id, "delete", {})
        return True

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def upsert_chunks(self, chunks: Sequence[Chunk]) -> None:
        """Insert or replace chunks keyed by ``(parent_id, sequence_index)``.

        Text, offsets and vector of every chunk land in one transaction; the
        FTS index follows through triggers. Existing rows keep their id.
        """
        if not chunks:
            return
        with self.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO chunks (
                    parent_id, record_id, scope_id, page_number, sequence_index, text,
                    char_start, char_end, created_at, embedding_model,
                    vector, vector_scale, vector_dim
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (parent_id, sequence_index) DO UPDATE SET
                    record_id = excluded.record_id,
                    scope_id = excluded.scope_id,
                    page_number = excluded.page_number,
                    text = excluded.text,
                    char_start = excluded.char_start,
                    char_end = excluded.char_end,
                    created_at = excluded.created_at,
                    embedding_model = excluded.embedding_model,
                    vector = excluded.vector,
                    vector_scale = excluded.vector_scale,
                    vector_dim = excluded.vector_dim
                """,
                [
                    (
                        c.parent_id,
                        c.record_id,
                        c.scope_id,
                        c.page_number,
                        c.sequence_index,
                        c.text,
                        c.char_start,
                        c.char_end,
                        c.created_at or utc_now(),
                        c.embedding_model,
                        c.vector,
                        c.vector_scale,
                        c.vector_dim,
                    )
                    for c in chunks
                ],
            )

    def prune_chunks(self, parent_id: str, keep_below: int) -> int:
        """Delete chunks of *parent_id* with ``sequence_index >= keep_below``.

        Used after a re-index produced fewer chunks than the previous pass.
        """
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM chunks WHERE parent_id = ? AND sequence_index >= ?",
                (parent_id, keep_below),
            )
            return cur.rowcount

    def get_chunk(self, chunk_id: int) -> Chunk | None:
        """Return a chunk by id, or None if not found."""
        rows = self._query(f"SELECT {_CHUNK_COLS} FROM chunks c WHERE c.id = ?", (chunk_id,))
        return _row_to_chunk(rows[0]) if rows else None

    def chunks_for_unit(self, parent_id: str) -> list[Chunk]:
        """Return the chunks of one content unit in sequence order."""
        rows = self._query(
            f"SELECT {_CHUNK_COLS} FROM chunks c WHERE c.parent_id = ? ORDER BY c.sequence_index",
            (parent_id,),
        )
        return [_row_to_chunk(r) for r in rows]

    def list_chunks(self, record_id: str) -> list[Chunk]:
        """Return the chunks of a record in page, then sequence, order."""
        rows = self._query(
            f"SELECT {_CHUNK_COLS} FROM chunks c WHERE c.record_id = ? "
            "ORDER BY COALESCE(c.page_number, 0), c.sequence_index",
            (record_id,),
        )
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, scope_id: str | None = None) -> int:
        if scope_id is None:
            rows = self._query("SELECT COUNT(*) FROM chunks")
        else:
            rows = self._query("SELECT COUNT(*) FROM chunks WHERE scope_id = ?", (scope_id,))
        return rows[0][0]

    def storage_used(self, scope_id: str | None = None) -> int:
        """Approximate bytes held for *scope_id* (all scopes when None).

        Counts raw unit text, chunk text and vector blobs.
        """
        where, params = ("WHERE scope_id = ?", (scope_id,)) if scope_id is not None else ("", ())
        units = self._query(
            f"SELECT COALESCE(SUM(LENGTH(CAST(raw_text AS BLOB))), 0) FROM content_units {where}",
            params,
        )[0][0]
        chunks = self._query(
            "SELECT COALESCE(SUM(LENGTH(CAST(text AS BLOB)) + COALESCE(LENGTH(vector), 0)), 0) "
            f"FROM chunks {where}",
            params,
        )[0][0]
        return int(units) + int(chunks)

    # ------------------------------------------------------------------
    # Search (READY records only, always scoped)
    # ------------------------------------------------------------------

    def search_fts(self, scope_id: str, query: str, limit: int = 50) -> list[tuple[Chunk, float]]:
        """BM25 full-text search within a scope. Returns (chunk, score) best-first.

        bm25() returns negative values; lower (more negative) = better match.
        The raw score is returned so callers can normalise it.
        """
        fts_query = build_fts_query(query)
        if not fts_query:
            return []
        rows = self._query(
            f"""
            SELECT {_CHUNK_COLS}, bm25(chunks_fts) AS score
            FROM chunks_fts
            JOIN chunks c ON c.id = chunks_fts.rowid
            JOIN index_records r ON r.id = c.record_id
            WHERE chunks_fts MATCH ? AND c.scope_id = ? AND r.status = 'READY'
            ORDER BY score, c.id
            LIMIT ?
            """,
            (fts_query, scope_id, limit),
        )
        return [(_row_to_chunk(r), r["score"]) for r in rows]

    def vector_chunks(self, scope_id: str, dim: int) -> list[Chunk]:
        """Return every READY chunk in *scope_id* holding a vector of dimension *dim*."""
        rows = self._query(
            f"""
            SELECT {_CHUNK_COLS}
            FROM chunks c
            JOIN index_records r ON r.id = c.record_id
            WHERE c.scope_id = ? AND r.status = 'READY'
              AND c.vector IS NOT NULL AND c.vector_dim = ?
            ORDER BY c.id
            """,
            (scope_id, dim),
        )
        return [_row_to_chunk(r) for r in rows]

    # ------------------------------------------------------------------
    # Durable index-job queue
    # ------------------------------------------------------------------

    def enqueue_job(self, record_id: str) -> int:
        """Queue an indexing pass for *record_id*; reuses an existing PENDING job.

        Raises:
            StoreError: If the record does not exist.
        """
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT scope_id FROM index_records WHERE id = ?", (record_id,)
            ).fetchone()
            if row is None:
                raise StoreError(f"Index record '{record_id}' not found")
            return self._enqueue(record_id, row["scope_id"])

    def _enqueue(self, record_id: str, scope_id: str) -> int:
        existing = self._conn.execute(
            "SELECT id FROM index_jobs WHERE record_id = ? AND status = 'PENDING'",
            (record_id,),
        ).fetchone()
        if existing is not None:
            return existing["id"]
        now = utc_now()
        cur = self._conn.execute(
            """
            INSERT INTO index_jobs (record_id, scope_id, status, created_at, updated_at)
            VALUES (?, ?, 'PENDING', ?, ?)
            """,
            (record_id, scope_id, now, now),
        )
        return cur.lastrowid

    def claim_next_job(self) -> IndexJob | None:
        """Atomically move the oldest claimable PENDING job to RUNNING.

        A job is claimable when no other job of the same scope is RUNNING.
        Its record moves to INDEXING in the same transaction, so a RUNNING job
        whose record is READY or FAILED has finished its pass.
        """
        with self.transaction() as conn:
            row = conn.execute(
                f"""
                SELECT {_JOB_COLS} FROM index_jobs j
                WHERE j.status = 'PENDING'
                  AND NOT EXISTS (
                      SELECT 1 FROM index_jobs b
                      WHERE b.scope_id = j.scope_id AND b.status = 'RUNNING'
                  )
                ORDER BY j.id
                LIMIT 1
                """
            ).fetchone()
            if row is None:
                return None
            now = utc_now()
            conn.execute(
                """
                UPDATE index_jobs
                SET status = 'RUNNING', attempts = attempts + 1, updated_at = ?
                WHERE id = ?
                """,
                (now, row["id"]),
            )
            self.transition(row["record_id"], IndexStatus.INDEXING)
            job = _row_to_job(row)
            job.status = JobStatus.RUNNING
            job.attempts += 1
            job.updated_at = now
            return job

    def complete_job(self, job_id: int) -> None:
        self._finish_job(job_id, JobStatus.DONE, None)

    def fail_job(self, job_id: int, error: str) -> None:
        self._finish_job(job_id, JobStatus.FAILED, error)

    def _finish_job(self, job_id: int, status: JobStatus, error: str | None) -> None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE index_jobs SET status = ?, last_error = ?, updated_at = ? WHERE id = ?",
                (status.value, error, utc_now(), job_id),
            )

    def recover_inflight_jobs(self) -> int:
        """Settle RUNNING jobs left by an unclean shutdown.

        Claiming moves a record to INDEXING, so a RUNNING job whose record is
        already READY or FAILED only missed its own bookkeeping: it is closed
        as DONE or FAILED and a FAILED record is never retried without an
        explicit reindex. Every other RUNNING job goes back to PENDING.

        Returns:
            Number of jobs reset to PENDING.
        """
        now = utc_now()
        requeued = 0
        with self.transaction() as conn:
            rows = conn.execute(
                """
                SELECT j.id, r.status AS record_status, r.error_message
                FROM index_jobs j
                JOIN index_records r ON r.id = j.record_id
                WHERE j.status = 'RUNNING'
                ORDER BY j.id
                """
            ).fetchall()
            for row in rows:
                if row["record_status"] == IndexStatus.READY.value:
                    status, error = JobStatus.DONE, None
                elif row["record_status"] == IndexStatus.FAILED.value:
                    status, error = JobStatus.FAILED, row["error_message"] or "indexing failed"
                else:
                    status, error = JobStatus.PENDING, None
                    requeued += 1
                conn.execute(
                    "UPDATE index_jobs SET status = ?, last_error = ?, updated_at = ? WHERE id = ?",
                    (status.value, error, now, row["id"]),
                )
        return requeued

    def get_job(self, job_id: int) -> IndexJob | None:
        rows = self._query(f"SELECT {_JOB_COLS} FROM index_jobs WHERE id = ?", (job_id,))
        return _row_to_job(rows[0]) if rows else None

    def list_jobs(self, status: JobStatus | None = None) -> list[IndexJob]:
        """Return jobs in queue order, optionally filtered by status."""
        if status is None:
            rows = self._query(f"SELECT {_JOB_COLS} FROM index_jobs ORDER BY id")
        else:
            rows = self._query(
                f"SELECT {_JOB_COLS} FROM index_jobs WHERE status = ? ORDER BY id",
                (status.value,),
            )
        return [_row_to_job(r) for r in rows]

    def count_pending_jobs(self) -> int:
        return self._query("SELECT COUNT(*) FROM index_jobs WHERE status = 'PENDING'")[0][0]

    # ------------------------------------------------------------------
    # Change log (read side for external mirrors)
    # ------------------------------------------------------------------

    def list_changes(self, after: int = 0, limit: int = 100) -> list[ChangeEvent]:
        """Return change-log entries with ``seq > after`` in ascending order."""
        rows = self._query(
            """
            SELECT seq, entity, entity_id, scope_id, op, payload, created_at
            FROM change_log WHERE seq > ? ORDER BY seq LIMIT ?
            """,
            (after, limit),
        )
        return [
            ChangeEvent(
                seq=r["seq"],
                entity=r["entity"],
                entity_id=r["entity_id"],
                scope_id=r["scope_id"],
                op=r["op"],
                payload=r["payload"],
                created_at=r["created_at"],
            )
            for r in rows
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _record_payload(record: IndexRecord) -> dict[str, Any]:
    return {
        "display_name": record.display_name,
        "source_kind": record.source_kind.value,
        "status": record.status.value,
        "total_chunks": record.total_chunks,
        "size_bytes": record.size_bytes,
        "page_count": record.page_count,
        "error_message": record.error_message,
    }


def _row_to_record(row: sqlite3.Row) -> IndexRecord:
    return IndexRecord(
        id=row["id"],
        scope_id=row["scope_id"],
        display_name=row["display_name"],
        source_kind=SourceKind(row["source_kind"]),
        status=IndexStatus(row["status"]),
        total_chunks=row["total_chunks"],
        indexed_chunks=row["indexed_chunks"],
        size_bytes=row["size_bytes"],
        page_count=row["page_count"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        indexed_at=row["indexed_at"],
    )


def _row_to_unit(row: sqlite3.Row) -> ContentUnit:
    return ContentUnit(
        id=row["id"],
        record_id=row["record_id"],
        scope_id=row["scope_id"],
        source_kind=SourceKind(row["source_kind"]),
        page_number=row["page_number"],
        raw_text=row["raw_text"],
        created_at=row["created_at"],
        metadata=json.loads(row["metadata"] or "{}"),
        last_accessed_at=row["last_accessed_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        parent_id=row["parent_id"],
        record_id=row["record_id"],
        scope_id=row["scope_id"],
        page_number=row["page_number"],
        sequence_index=row["sequence_index"],
        text=row["text"],
        char_start=row["char_start"],
        char_end=row["char_end"],
        created_at=row["created_at"],
        embedding_model=row["embedding_model"],
        vector=row["vector"],
        vector_scale=row["vector_scale"],
        vector_dim=row["vector_dim"],
    )


def _row_to_job(row: sqlite3.Row) -> IndexJob:
    return IndexJob(
        id=row["id"],
        record_id=row["record_id"],
        scope_id=row["scope_id"],
        status=JobStatus(row["status"]),
        attempts=row["attempts"],
        last_error=row["last_error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
