"""Validate incoming content, persist it and queue it for indexing.

Nothing is written for rejected input: validation runs before the single
transaction that creates the IndexRecord, its ContentUnits and the queued
index job. The optional ``notify`` callback wakes the background indexer
once that transaction has committed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from mnemos.config import IngestCfg
from mnemos.db.models import ContentUnit, IndexRecord, SourceKind
from mnemos.db.repository import Repository
from mnemos.errors import ValidationError
from mnemos.ingest.extract import PageText
from mnemos.ingest.heuristics import MemoryKind, memory_metadata

logger = logging.getLogger(__name__)

_NAME_CHARS = 60


class Ingestor:
    """Synchronous write path for memory turns and documents.

    Args:
        repo: Repository bound to the caller's connection.
        cfg: Size ceilings; defaults to ``IngestCfg()``.
        notify: Called after each successful write (e.g. ``IndexWorker.wake``).
    """

    def __init__(
        self,
        repo: Repository,
        cfg: IngestCfg | None = None,
        notify: Callable[[], None] | None = None,
    ) -> None:
        self.repo = repo
        self.cfg = cfg or IngestCfg()
        self._notify = notify

    def ingest(
        self,
        scope_id: str,
        source_kind: SourceKind | str,
        raw_text: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        """Store one content unit and queue it for indexing.

        Args:
            scope_id: Isolation boundary the unit belongs to.
            source_kind: ``MEMORY`` or ``DOCUMENT``.
            raw_text: Text to index; must not be blank.
            metadata: Optional ``display_name``, ``created_at`` (ISO string or
                datetime), ``page_number`` and ``size_bytes``. MEMORY units
                also accept ``memory_kind`` and ``importance`` to override
                the heuristic tags.

        Returns:
            The new ContentUnit id.

        Raises:
            ValidationError: On blank scope or text, or oversized input. Also on
                non-integer ``page_number`` or ``size_bytes``, or an invalid
                ``memory_kind`` or ``importance`` override.
        """
        meta = dict(metadata or {})
        kind = _coerce_kind(source_kind)
        _require_scope(scope_id)
        self._check_text(raw_text)
        size_bytes = _int_field(meta, "size_bytes") or len(raw_text.encode("utf-8"))
        if size_bytes > self.cfg.max_document_bytes:
            raise ValidationError(
                f"Input is {size_bytes} bytes; the limit is {self.cfg.max_document_bytes}"
            )

        created_at = _timestamp(meta.get("created_at"))
        record = IndexRecord(
            id=str(uuid.uuid4()),
            scope_id=scope_id,
            display_name=str(meta.get("display_name") or _default_name(raw_text)),
            source_kind=kind,
            size_bytes=size_bytes,
            page_count=1,
            created_at=created_at,
        )
        unit = ContentUnit(
            id=str(uuid.uuid4()),
            record_id=record.id,
            scope_id=scope_id,
            source_kind=kind,
            raw_text=raw_text,
            page_number=_int_field(meta, "page_number"),
            created_at=created_at,
            metadata=_memory_metadata(raw_text, meta) if kind == SourceKind.MEMORY else {},
        )
        job_id = self.repo.add_record(record, [unit])
        logger.debug("Queued %s unit %s (record %s, job %d)", kind.value, unit.id, record.id, job_id)
        self._signal()
        return unit.id

    def ingest_turn(self, scope_id: str, turn_text: str, timestamp: datetime | str | None = None) -> str:
        """Store one conversation turn as a MEMORY unit stamped with *timestamp*."""
        return self.ingest(
            scope_id,
            SourceKind.MEMORY,
            turn_text,
            {"created_at": timestamp} if timestamp is not None else None,
        )

    def ingest_document(
        self,
        scope_id: str,
        display_name: str,
        pages: Sequence[PageText | str],
        size_bytes: int | None = None,
    ) -> str:
        """Store a multi-page document as one record with one unit per page.

        Blank pages are skipped but keep their page numbers. Plain strings are
        numbered from 1 in order.

        Returns:
            The new IndexRecord id.

        Raises:
            ValidationError: If the document is empty, exceeds the byte or
                page cap, or a page exceeds the text cap.
        """
        _require_scope(scope_id)
        if not display_name or not display_name.strip():
            raise ValidationError("display_name must not be blank")

        numbered = [
            p if isinstance(p, PageText) else PageText(page_number=i, text=p)
            for i, p in enumerate(pages, start=1)
        ]
        kept = [p for p in numbered if p.text.strip()]
        if not kept:
            raise ValidationError(f"'{display_name}' contains no text")
        if len(numbered) > self.cfg.max_pages:
            raise ValidationError(
                f"'{display_name}' has {len(numbered)} pages; the limit is {self.cfg.max_pages}"
            )
        if size_bytes is None:
            size_bytes = sum(len(p.text.encode("utf-8")) for p in kept)
        if size_bytes > self.cfg.max_document_bytes:
            raise ValidationError(
                f"'{display_name}' is {size_bytes} bytes; "
                f"the limit is {self.cfg.max_document_bytes}"
            )
        for page in kept:
            self._check_text(page.text)

        created_at = _timestamp(None)
        record = IndexRecord(
            id=str(uuid.uuid4()),
            scope_id=scope_id,
            display_name=display_name,
            source_kind=SourceKind.DOCUMENT,
            size_bytes=size_bytes,
            page_count=len(numbered),
            created_at=created_at,
        )
        units = [
            ContentUnit(
                id=str(uuid.uuid4()),
                record_id=record.id,
                scope_id=scope_id,
                source_kind=SourceKind.DOCUMENT,
                raw_text=page.text,
                page_number=page.page_number,
                created_at=created_at,
            )
            for page in kept
        ]
        job_id = self.repo.add_record(record, units)
        logger.info(
            "Queued document '%s' (%d pages, record %s, job %d)",
            display_name, len(units), record.id, job_id,
        )
        self._signal()
        return record.id

    def reindex(self, record_id: str) -> int:
        """Queue a fresh indexing pass for an existing record. Returns the job id."""
        if self.repo.get_record(record_id) is None:
            raise ValidationError(f"Unknown record '{record_id}'")
        job_id = self.repo.enqueue_job(record_id)
        logger.info("Queued re-index of record %s (job %d)", record_id, job_id)
        self._signal()
        return job_id

    def _check_text(self, text: str) -> None:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text must not be blank")
        if len(text) > self.cfg.max_text_chars:
            raise ValidationError(
                f"Text is {len(text)} characters; the limit is {self.cfg.max_text_chars}"
            )

    def _signal(self) -> None:
        if self._notify is not None:
            self._notify()


def _require_scope(scope_id: str) -> None:
    if not isinstance(scope_id, str) or not scope_id.strip():
        raise ValidationError("scope_id must not be blank")


def _coerce_kind(kind: SourceKind | str) -> SourceKind:
    try:
        return SourceKind(kind.upper() if isinstance(kind, str) else kind)
    except ValueError as exc:
        raise ValidationError(f"Unknown source kind '{kind}'") from exc


def _timestamp(value: datetime | str | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat(timespec="microseconds")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    return str(value)


def _default_name(text: str) -> str:
    first = " ".join(text.split())
    return first if len(first) <= _NAME_CHARS else first[: _NAME_CHARS - 1] + "…"


def _int_field(meta: Mapping[str, Any], key: str) -> int | None:
    value = meta.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer, got {value!r}") from exc


def _memory_metadata(text: str, meta: Mapping[str, Any]) -> dict[str, Any]:
    tags = memory_metadata(text)
    if meta.get("memory_kind") is not None:
        raw = meta["memory_kind"]
        try:
            tags["memory_kind"] = MemoryKind(str(raw).upper()).value
        except ValueError as exc:
            raise ValidationError(f"Unknown memory kind '{raw}'") from exc
    if meta.get("importance") is not None:
        raw = meta["importance"]
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"importance must be a number, got {raw!r}") from exc
        if not 0.0 <= value <= 1.0:
            raise ValidationError(f"importance must be between 0 and 1, got {value}")
        tags["importance"] = value
    return tags
