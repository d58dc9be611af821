"""Domain models for the mnemos store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SourceKind(str, Enum):
    MEMORY = "MEMORY"
    DOCUMENT = "DOCUMENT"


class IndexStatus(str, Enum):
    PENDING = "PENDING"
    INDEXING = "INDEXING"
    READY = "READY"
    FAILED = "FAILED"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


# (from, to) pairs the store accepts. READY/FAILED -> INDEXING is a re-index pass.
ALLOWED_TRANSITIONS: frozenset[tuple[IndexStatus, IndexStatus]] = frozenset(
    {
        (IndexStatus.PENDING, IndexStatus.INDEXING),
        (IndexStatus.INDEXING, IndexStatus.INDEXING),
        (IndexStatus.INDEXING, IndexStatus.READY),
        (IndexStatus.INDEXING, IndexStatus.FAILED),
        (IndexStatus.READY, IndexStatus.INDEXING),
        (IndexStatus.FAILED, IndexStatus.INDEXING),
    }
)


@dataclass
class IndexRecord:
    id: str
    scope_id: str
    display_name: str
    source_kind: SourceKind
    status: IndexStatus = IndexStatus.PENDING
    total_chunks: int = 0
    indexed_chunks: int = 0
    size_bytes: int = 0
    page_count: int = 0
    error_message: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    indexed_at: str | None = None

    @property
    def progress(self) -> float:
        """Fraction of chunks indexed in the current pass (0.0 when unknown)."""
        if self.total_chunks <= 0:
            return 1.0 if self.status == IndexStatus.READY else 0.0
        return min(1.0, self.indexed_chunks / self.total_chunks)


@dataclass
class ContentUnit:
    id: str
    record_id: str
    scope_id: str
    source_kind: SourceKind
    raw_text: str
    page_number: int | None = None
    created_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    last_accessed_at: str | None = None


@dataclass
class Chunk:
    parent_id: str
    record_id: str
    scope_id: str
    sequence_index: int
    text: str
    char_start: int
    char_end: int
    page_number: int | None = None
    created_at: str | None = None
    embedding_model: str | None = None
    vector: bytes | None = None
    vector_scale: float | None = None
    vector_dim: int | None = None
    id: int | None = None  # set after insert; None for unsaved chunks

    @property
    def has_vector(self) -> bool:
        return self.vector is not None


@dataclass
class IndexJob:
    id: int
    record_id: str
    scope_id: str
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class ChangeEvent:
    seq: int
    entity: str
    entity_id: str
    scope_id: str
    op: str
    payload: str = field(default_factory=lambda: "{}")
    created_at: str | None = None

    @property
    def payload_dict(self) -> dict:
        return json.loads(self.payload)
