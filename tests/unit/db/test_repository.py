"""Tests for the Repository: records, units, chunks, FTS, job queue, change log."""

from __future__ import annotations

import pytest

from mnemos.db.models import (
    Chunk,
    ContentUnit,
    IndexRecord,
    IndexStatus,
    JobStatus,
    SourceKind,
)
from mnemos.db.repository import build_fts_query
from mnemos.embed.quantizer import quantize
from mnemos.errors import StoreError


def _record(id="rec-1", scope="s1", kind=SourceKind.MEMORY, name="note"):
    return IndexRecord(id=id, scope_id=scope, display_name=name, source_kind=kind, page_count=1)


def _unit(id="unit-1", record_id="rec-1", scope="s1", text="hello world", page=None):
    return ContentUnit(
        id=id,
        record_id=record_id,
        scope_id=scope,
        source_kind=SourceKind.MEMORY,
        raw_text=text,
        page_number=page,
    )


def _chunk(parent="unit-1", record_id="rec-1", scope="s1", seq=0, text="hello world", vector=None):
    q = quantize(vector) if vector is not None else None
    return Chunk(
        parent_id=parent,
        record_id=record_id,
        scope_id=scope,
        sequence_index=seq,
        text=text,
        char_start=seq * 10,
        char_end=seq * 10 + len(text),
        embedding_model="stub/hash-4" if q else None,
        vector=q.to_blob() if q else None,
        vector_scale=q.scale if q else None,
        vector_dim=q.dim if q else None,
    )


def _add(repo, id="rec-1", scope="s1", text="hello world"):
    return repo.add_record(_record(id=id, scope=scope), [_unit(id=f"{id}-u", record_id=id, scope=scope, text=text)])


def _ready(repo, record_id="rec-1", total=1):
    repo.transition(record_id, IndexStatus.INDEXING)
    repo.transition(record_id, IndexStatus.READY, total_chunks=total)


def _fts_rowids(conn, term: str) -> list[int]:
    return [r[0] for r in conn.execute("SELECT rowid FROM chunks_fts WHERE chunks_fts MATCH ?", (f'"{term}"',))]


# ------------------------------------------------------------------
# Records + units
# ------------------------------------------------------------------

def test_add_record_persists_record_units_and_job(repo):
    job_id = repo.add_record(_record(), [_unit()])

    record = repo.get_record("rec-1")
    assert record is not None
    assert record.status == IndexStatus.PENDING
    assert record.created_at is not None
    units = repo.list_units("rec-1")
    assert [u.id for u in units] == ["unit-1"]
    assert units[0].created_at == record.created_at
    job = repo.get_job(job_id)
    assert job.record_id == "rec-1"
    assert job.status == JobStatus.PENDING


def test_add_record_keeps_supplied_created_at(repo):
    rec = _record()
    rec.created_at = "2024-01-01T00:00:00.000000+00:00"
    repo.add_record(rec, [_unit()])
    assert repo.get_unit("unit-1").created_at == "2024-01-01T00:00:00.000000+00:00"


def test_add_record_duplicate_raises_store_error_and_rolls_back(repo):
    _add(repo)
    with pytest.raises(StoreError):
        repo.add_record(_record(), [_unit(id="other-unit")])
    assert repo.get_unit("other-unit") is None
    assert len(repo.list_jobs()) == 1


def test_get_record_not_found(repo):
    assert repo.get_record("missing") is None


def test_list_records_filters(repo):
    _add(repo, id="a", scope="s1")
    _add(repo, id="b", scope="s1")
    _add(repo, id="c", scope="s2")
    _ready(repo, "b")

    assert {r.id for r in repo.list_records()} == {"a", "b", "c"}
    assert {r.id for r in repo.list_records("s1")} == {"a", "b"}
    assert [r.id for r in repo.list_records("s1", IndexStatus.READY)] == ["b"]


def test_list_units_page_order(repo):
    rec = _record(kind=SourceKind.DOCUMENT)
    repo.add_record(rec, [_unit(id="p2", page=2), _unit(id="p1", page=1), _unit(id="p3", page=3)])
    assert [u.page_number for u in repo.list_units("rec-1")] == [1, 2, 3]


def test_unit_metadata_round_trips(repo):
    unit = _unit()
    unit.metadata = {"memory_kind": "FACT", "importance": 0.75}
    repo.add_record(_record(), [unit])
    assert repo.get_unit("unit-1").metadata == {"memory_kind": "FACT", "importance": 0.75}
    assert repo.get_unit("unit-1").last_accessed_at is None


def test_touch_units_stamps_without_logging(repo):
    repo.add_record(_record(kind=SourceKind.DOCUMENT), [_unit(id="p1", page=1), _unit(id="p2", page=2)])
    before = len(repo.list_changes())

    assert repo.touch_units(["p1", "p1", "missing"], when="2024-07-01T00:00:00+00:00") == 1
    assert repo.get_unit("p1").last_accessed_at == "2024-07-01T00:00:00+00:00"
    assert repo.get_unit("p2").last_accessed_at is None
    assert len(repo.list_changes()) == before
    assert repo.touch_units([]) == 0


# ------------------------------------------------------------------
# Status transitions
# ------------------------------------------------------------------

def test_full_lifecycle(repo):
    _add(repo)
    indexing = repo.transition("rec-1", IndexStatus.INDEXING)
    assert indexing.status == IndexStatus.INDEXING

    ready = repo.transition("rec-1", IndexStatus.READY, total_chunks=3)
    assert ready.status == IndexStatus.READY
    assert ready.total_chunks == 3
    assert ready.indexed_chunks == 3
    assert ready.indexed_at is not None
    assert repo.get_record("rec-1").progress == 1.0


@pytest.mark.parametrize(
    "path",
    [
        [IndexStatus.READY],
        [IndexStatus.FAILED],
        [IndexStatus.INDEXING, IndexStatus.READY, IndexStatus.FAILED],
        [IndexStatus.INDEXING, IndexStatus.READY, IndexStatus.PENDING],
    ],
)
def test_illegal_transitions_rejected(repo, path):
    _add(repo)
    for status in path[:-1]:
        repo.transition("rec-1", status)
    before = repo.get_record("rec-1").status
    with pytest.raises(StoreError, match="Illegal status transition"):
        repo.transition("rec-1", path[-1])
    assert repo.get_record("rec-1").status == before


def test_transition_missing_record(repo):
    with pytest.raises(StoreError, match="not found"):
        repo.transition("missing", IndexStatus.INDEXING)


def test_failed_records_error_and_reindex_clears_it(repo):
    _add(repo)
    repo.transition("rec-1", IndexStatus.INDEXING)
    failed = repo.transition("rec-1", IndexStatus.FAILED, error_message="boom")
    assert failed.error_message == "boom"

    again = repo.transition("rec-1", IndexStatus.INDEXING)
    assert again.error_message is None


def test_reindex_resets_progress(repo):
    _add(repo)
    _ready(repo, total=4)
    record = repo.transition("rec-1", IndexStatus.INDEXING)
    assert record.indexed_chunks == 0
    assert record.progress == 0.0


def test_set_progress(repo):
    _add(repo)
    repo.transition("rec-1", IndexStatus.INDEXING)
    repo.set_progress("rec-1", 2, 5)
    record = repo.get_record("rec-1")
    assert (record.indexed_chunks, record.total_chunks) == (2, 5)
    assert record.progress == pytest.approx(0.4)


# ------------------------------------------------------------------
# Chunks + FTS sync
# ------------------------------------------------------------------

def test_upsert_chunks_is_idempotent(repo, tmp_db):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks([_chunk(text="alpha words")])
    before = repo.chunks_for_unit("unit-1")
    repo.upsert_chunks([_chunk(text="alpha words")])
    after = repo.chunks_for_unit("unit-1")

    assert len(after) == 1
    assert after[0].id == before[0].id
    assert _fts_rowids(tmp_db, "alpha") == [after[0].id]


def test_upsert_replaces_text_and_fts_entry(repo, tmp_db):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks([_chunk(text="alpha words")])
    repo.upsert_chunks([_chunk(text="omega words")])

    chunks = repo.chunks_for_unit("unit-1")
    assert [c.text for c in chunks] == ["omega words"]
    assert _fts_rowids(tmp_db, "alpha") == []
    assert _fts_rowids(tmp_db, "omega") == [chunks[0].id]


def test_chunk_vector_round_trip(repo):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks([_chunk(vector=[0.1, -0.2, 0.3, 0.4])])
    stored = repo.chunks_for_unit("unit-1")[0]
    assert stored.has_vector
    assert stored.vector_dim == 4
    assert stored.vector_scale == pytest.approx(0.4 / 127)
    assert repo.get_chunk(stored.id) == stored


def test_prune_chunks(repo):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks([_chunk(seq=i, text=f"part {i}") for i in range(3)])
    assert repo.prune_chunks("unit-1", keep_below=1) == 2
    assert [c.sequence_index for c in repo.chunks_for_unit("unit-1")] == [0]


def test_count_chunks_and_storage_used(repo):
    repo.add_record(_record(), [_unit()])
    repo.add_record(_record(id="rec-2", scope="s2"), [_unit(id="unit-2", record_id="rec-2", scope="s2")])
    repo.upsert_chunks([_chunk(seq=0), _chunk(seq=1)])
    repo.upsert_chunks([_chunk(parent="unit-2", record_id="rec-2", scope="s2", vector=[1.0, 0, 0, 0])])

    assert repo.count_chunks() == 3
    assert repo.count_chunks("s1") == 2
    assert repo.storage_used("s2") == len("hello world") * 2 + 4
    assert repo.storage_used() > repo.storage_used("s2")


# ------------------------------------------------------------------
# Search
# ------------------------------------------------------------------

def test_build_fts_query_quotes_tokens():
    assert build_fts_query('foo-bar "baz" OR') == '"foo" OR "bar" OR "baz" OR "OR"'
    assert build_fts_query("  ?!  ") == ""


def test_search_fts_only_ready_records(repo):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks([_chunk(text="zanzibar spice")])
    assert repo.search_fts("s1", "zanzibar") == []

    _ready(repo)
    hits = repo.search_fts("s1", "zanzibar")
    assert len(hits) == 1
    chunk, score = hits[0]
    assert chunk.text == "zanzibar spice"
    assert score < 0


def test_search_fts_is_scoped(repo):
    repo.add_record(_record(), [_unit()])
    repo.add_record(_record(id="rec-2", scope="s2"), [_unit(id="unit-2", record_id="rec-2", scope="s2")])
    repo.upsert_chunks([_chunk(text="shared term")])
    repo.upsert_chunks([_chunk(parent="unit-2", record_id="rec-2", scope="s2", text="shared term")])
    _ready(repo, "rec-1")
    _ready(repo, "rec-2")

    hits = repo.search_fts("s2", "shared")
    assert [c.scope_id for c, _ in hits] == ["s2"]


def test_search_fts_survives_operator_syntax(repo):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks([_chunk(text="near the end")])
    _ready(repo)
    assert len(repo.search_fts("s1", 'NEAR( "end" *')) == 1


def test_vector_chunks_filters_dimension(repo):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks(
        [
            _chunk(seq=0, vector=[1.0, 0.0, 0.0, 0.0]),
            _chunk(seq=1),
            _chunk(seq=2, vector=[1.0] * 8),
        ]
    )
    _ready(repo, total=3)
    assert [c.sequence_index for c in repo.vector_chunks("s1", 4)] == [0]
    assert [c.sequence_index for c in repo.vector_chunks("s1", 8)] == [2]


# ------------------------------------------------------------------
# Deletes
# ------------------------------------------------------------------

def test_delete_record_cascades(repo, tmp_db):
    repo.add_record(_record(), [_unit()])
    repo.upsert_chunks([_chunk(text="cascade me")])
    _ready(repo)

    assert repo.delete_record("rec-1") is True
    assert repo.get_record("rec-1") is None
    assert repo.get_unit("unit-1") is None
    assert repo.count_chunks() == 0
    assert repo.list_jobs() == []
    assert _fts_rowids(tmp_db, "cascade") == []


def test_delete_record_missing(repo):
    assert repo.delete_record("nope") is False


def test_delete_unit_removes_whole_document(repo):
    repo.add_record(
        _record(kind=SourceKind.DOCUMENT),
        [_unit(id="p1", page=1), _unit(id="p2", page=2)],
    )
    assert repo.delete_unit("p2") is True
    assert repo.get_record("rec-1") is None
    assert repo.get_unit("p1") is None
    assert repo.delete_unit("p2") is False


def test_delete_scope(repo):
    _add(repo, id="a", scope="s1")
    _add(repo, id="b", scope="s1")
    _add(repo, id="c", scope="s2")

    assert repo.delete_scope("s1") == 2
    assert [r.id for r in repo.list_records()] == ["c"]
    assert repo.delete_scope("empty") == 0


# ------------------------------------------------------------------
# Job queue
# ------------------------------------------------------------------

def test_claim_one_job_per_scope(repo):
    _add(repo, id="a", scope="s1")
    _add(repo, id="b", scope="s1")
    _add(repo, id="c", scope="s2")

    first = repo.claim_next_job()
    second = repo.claim_next_job()
    assert (first.record_id, second.record_id) == ("a", "c")
    assert first.status == JobStatus.RUNNING
    assert first.attempts == 1
    assert repo.claim_next_job() is None

    repo.complete_job(first.id)
    third = repo.claim_next_job()
    assert third.record_id == "b"
    assert repo.get_job(first.id).status == JobStatus.DONE


def test_fail_job_records_error(repo):
    _add(repo)
    job = repo.claim_next_job()
    repo.fail_job(job.id, "provider down")
    stored = repo.get_job(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.last_error == "provider down"
    assert repo.count_pending_jobs() == 0


def test_recover_inflight_jobs(repo):
    _add(repo)
    job = repo.claim_next_job()
    assert repo.recover_inflight_jobs() == 1
    assert repo.get_job(job.id).status == JobStatus.PENDING
    assert repo.claim_next_job().attempts == 2


def test_claim_moves_record_to_indexing(repo):
    _add(repo)
    repo.claim_next_job()
    assert repo.get_record("rec-1").status == IndexStatus.INDEXING


@pytest.mark.parametrize(
    "final, expected",
    [(IndexStatus.READY, JobStatus.DONE), (IndexStatus.FAILED, JobStatus.FAILED)],
)
def test_recover_settles_jobs_of_finished_records(repo, final, expected):
    _add(repo)
    job = repo.claim_next_job()
    repo.transition("rec-1", final, error_message="boom" if final == IndexStatus.FAILED else None)

    assert repo.recover_inflight_jobs() == 0
    stored = repo.get_job(job.id)
    assert stored.status == expected
    assert repo.claim_next_job() is None
    assert repo.get_record("rec-1").status == final


def test_recover_requeues_interrupted_reindex(repo):
    _add(repo)
    first = repo.claim_next_job()
    _ready(repo)
    repo.complete_job(first.id)
    repo.enqueue_job("rec-1")
    job = repo.claim_next_job()

    assert repo.recover_inflight_jobs() == 1
    assert repo.get_job(job.id).status == JobStatus.PENDING


def test_enqueue_reuses_pending_job(repo):
    job_id = _add(repo)
    assert repo.enqueue_job("rec-1") == job_id

    repo.claim_next_job()
    assert repo.enqueue_job("rec-1") != job_id
    assert repo.count_pending_jobs() == 1


def test_enqueue_unknown_record(repo):
    with pytest.raises(StoreError):
        repo.enqueue_job("missing")


def test_list_jobs_by_status(repo):
    _add(repo, id="a")
    _add(repo, id="b", scope="s2")
    repo.claim_next_job()
    assert [j.record_id for j in repo.list_jobs(JobStatus.PENDING)] == ["b"]
    assert [j.record_id for j in repo.list_jobs(JobStatus.RUNNING)] == ["a"]


# ------------------------------------------------------------------
# Change log
# ------------------------------------------------------------------

def test_change_log_records_insert_update_delete(repo):
    _add(repo)
    repo.transition("rec-1", IndexStatus.INDEXING)
    repo.set_progress("rec-1", 1, 2)
    repo.delete_record("rec-1")

    changes = repo.list_changes()
    assert [(c.entity, c.op) for c in changes] == [
        ("index_record", "insert"),
        ("content_unit", "insert"),
        ("index_record", "update"),
        ("content_unit", "delete"),
        ("index_record", "delete"),
    ]
    assert changes[2].payload_dict["status"] == "INDEXING"
    assert [c.seq for c in changes] == sorted(c.seq for c in changes)


def test_list_changes_after_cursor(repo):
    _add(repo, id="a")
    _add(repo, id="b")
    all_changes = repo.list_changes()
    tail = repo.list_changes(after=all_changes[1].seq)
    assert [c.entity_id for c in tail] == ["b", "b-u"]
    assert len(repo.list_changes(limit=1)) == 1
