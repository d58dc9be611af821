"""Engine facade wiring the store, ingestor, indexer and read path together.

One Engine owns one SQLite connection for the calling thread; background
indexing threads open their own. Typical use::

    with Engine("memory.db", load_config()) as engine:
        engine.start()
        engine.ingest_turn("persona-1", "We moved the launch to May.", ts)
        ctx = engine.context_for("persona-1", "when is the launch?")
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

from mnemos.config import MnemosConfig
from mnemos.db.connection import Database
from mnemos.db.models import Chunk, ContentUnit, IndexRecord, IndexStatus, SourceKind
from mnemos.db.repository import Repository
from mnemos.db.schema import initialize
from mnemos.embed.base import Embedder, ThrottledEmbedder
from mnemos.embed.factory import build_embedder
from mnemos.errors import ValidationError
from mnemos.index.pipeline import ProgressCallback
from mnemos.index.worker import IndexWorker
from mnemos.ingest.extract import PageText, extract_pages
from mnemos.ingest.ingestor import Ingestor
from mnemos.rag.assembler import AssembledContext, assemble
from mnemos.rag.retriever import RetrieverConfig, ScoredChunk, retrieve
from mnemos.rag.temporal import TimeRange

logger = logging.getLogger(__name__)


class Engine:
    """Local-first hybrid retrieval over scoped memory turns and documents.

    Args:
        db_path: SQLite database file (created and migrated if missing).
        config: Loaded configuration; defaults to ``MnemosConfig()``.
        embedder: Overrides the embedder built from ``config.embedding``.
        on_progress: Indexing progress callback ``(record_id, done, total)``.
    """

    def __init__(
        self,
        db_path: Path | str,
        config: MnemosConfig | None = None,
        embedder: Embedder | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.config = config or MnemosConfig()
        self.db_path = Path(db_path)
        self._conn = Database(self.db_path).connect()
        initialize(self._conn)
        self.repo = Repository(self._conn)

        base = embedder or build_embedder(self.config.embedding)
        self.embedder = ThrottledEmbedder(
            base, max_concurrent=self.config.indexer.max_concurrent_embeddings
        )
        self.worker = IndexWorker(
            self.db_path,
            self.embedder,
            self.config.chunking,
            self.config.indexer,
            on_progress=on_progress,
        )
        self.ingestor = Ingestor(self.repo, self.config.ingest, notify=self.worker.wake)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start background indexing threads."""
        self.worker.start()

    def shutdown(self) -> None:
        """Stop background indexing threads."""
        self.worker.shutdown()

    def run_pending(self) -> int:
        """Index everything queued, on the calling thread. Returns jobs run."""
        return self.worker.run_pending()

    def close(self) -> None:
        self.shutdown()
        self._conn.close()

    def __enter__(self) -> "Engine":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def ingest(
        self,
        scope_id: str,
        source_kind: SourceKind | str,
        raw_text: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        return self.ingestor.ingest(scope_id, source_kind, raw_text, metadata)

    def ingest_turn(self, scope_id: str, turn_text: str, timestamp: datetime | str | None = None) -> str:
        return self.ingestor.ingest_turn(scope_id, turn_text, timestamp)

    def ingest_document(
        self,
        scope_id: str,
        display_name: str,
        pages: Sequence[PageText | str],
        size_bytes: int | None = None,
    ) -> str:
        return self.ingestor.ingest_document(scope_id, display_name, pages, size_bytes)

    def ingest_file(self, scope_id: str, path: Path | str, display_name: str | None = None) -> str:
        """Extract a file's pages and ingest it as one document. Returns the record id.

        The byte cap is checked against the file size before extraction.
        """
        p = Path(path)
        if not p.is_file():
            raise ValidationError(f"File not found: {p}")
        size = p.stat().st_size
        if size > self.config.ingest.max_document_bytes:
            raise ValidationError(
                f"'{p.name}' is {size} bytes; the limit is {self.config.ingest.max_document_bytes}"
            )
        pages = extract_pages(p)
        return self.ingestor.ingest_document(scope_id, display_name or p.name, pages, size)

    def reindex(self, record_id: str) -> int:
        return self.ingestor.reindex(record_id)

    def remove_record(self, record_id: str) -> bool:
        return self.repo.delete_record(record_id)

    def remove_unit(self, unit_id: str) -> bool:
        return self.repo.delete_unit(unit_id)

    def remove_scope(self, scope_id: str) -> int:
        removed = self.repo.delete_scope(scope_id)
        logger.info("Removed %d record(s) from scope '%s'", removed, scope_id)
        return removed

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def list_records(
        self, scope_id: str | None = None, status: IndexStatus | None = None
    ) -> list[IndexRecord]:
        return self.repo.list_records(scope_id, status)

    def get_record(self, record_id: str) -> IndexRecord | None:
        return self.repo.get_record(record_id)

    def get_unit(self, unit_id: str) -> ContentUnit | None:
        return self.repo.get_unit(unit_id)

    def list_chunks(self, record_id: str) -> list[Chunk]:
        return self.repo.list_chunks(record_id)

    def storage_used(self, scope_id: str | None = None) -> int:
        return self.repo.storage_used(scope_id)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def retrieve(
        self,
        scope_id: str,
        query: str,
        k: int | None = None,
        time_range: TimeRange | None = None,
    ) -> list[ScoredChunk]:
        return retrieve(
            scope_id,
            query,
            self.config.retrieval.top_k if k is None else k,
            self.repo,
            self.embedder,
            RetrieverConfig.from_cfg(self.config.retrieval),
            time_range,
        )

    def assemble(self, ranked: Sequence[ScoredChunk], budget: int | None = None) -> AssembledContext:
        return assemble(ranked, self.config.assembly.default_budget if budget is None else budget)

    def context_for(
        self,
        scope_id: str,
        query: str,
        k: int | None = None,
        budget: int | None = None,
        *,
        complex_query: bool = False,
    ) -> AssembledContext:
        """Retrieve and assemble in one call.

        ``complex_query`` selects ``assembly.complex_budget`` when no explicit
        budget is given.
        """
        if budget is None:
            budget = (
                self.config.assembly.complex_budget
                if complex_query
                else self.config.assembly.default_budget
            )
        return assemble(self.retrieve(scope_id, query, k), budget)
