"""Hybrid retriever: BM25 (FTS5) + int8 cosine, merged by weighted sum.

Lexical channel:
  FTS5 MATCH over chunk text in the scope, READY records only. bm25() is
  negated (higher = better) and divided by the best score, giving (0, 1].

Vector channel:
  The query is embedded and quantized like the stored chunks, then compared
  against every READY chunk vector of the same dimension in the scope.
  Scores at or below ``min_vector_score`` are dropped.

Merge:
  score = lexical_weight * lex + vector_weight * vec   (found by both)
  score = lex  or  vec                                  (found by one)
  Ties break on newer ``created_at``, then lower chunk id.

If the query embedding fails, the vector channel is skipped and lexical
results are returned on their own. The query is embedded with a single
provider attempt; a slow or failing provider never delays the lexical answer
by a retry schedule.

Time filter:
  When the query names a period ("yesterday", "last week", "in march"), MEMORY
  chunks created outside it are dropped after the merge. Document chunks are
  never filtered. Scores are not changed.

Recalled memory and document units get ``last_accessed_at`` stamped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import numpy as np

from mnemos.config import RetrievalCfg
from mnemos.db.models import Chunk, IndexRecord, SourceKind
from mnemos.db.repository import Repository
from mnemos.embed.base import Embedder
from mnemos.embed.quantizer import cosine_similarities, is_zero, quantize
from mnemos.errors import EmbeddingError
from mnemos.ingest.heuristics import normalize
from mnemos.rag.temporal import TimeRange, parse_time_range

logger = logging.getLogger(__name__)


@dataclass
class RetrieverConfig:
    """Configuration for the hybrid retriever.

    Attributes:
        lexical_weight: Weight of the normalised BM25 score when both channels hit.
        vector_weight: Weight of the cosine score when both channels hit.
        candidate_limit: Maximum candidates taken from each channel.
        min_vector_score: Cosine scores at or below this are not vector hits.
        temporal_filter: Restrict MEMORY chunks to a time range named in the query.
        track_access: Stamp ``last_accessed_at`` on the units behind returned chunks.
    """

    lexical_weight: float = 0.3
    vector_weight: float = 0.7
    candidate_limit: int = 200
    min_vector_score: float = 0.0
    temporal_filter: bool = True
    track_access: bool = True

    @classmethod
    def from_cfg(cls, cfg: RetrievalCfg) -> "RetrieverConfig":
        return cls(
            lexical_weight=cfg.lexical_weight,
            vector_weight=cfg.vector_weight,
            candidate_limit=cfg.candidate_limit,
            min_vector_score=cfg.min_vector_score,
            temporal_filter=cfg.temporal_filter,
            track_access=cfg.track_access,
        )


@dataclass
class ScoredChunk:
    """A retrieved chunk with its merged score and per-channel scores.

    Attributes:
        chunk: The Chunk instance from the database.
        score: Merged relevance score (higher = more relevant).
        lexical_score: Normalised BM25 score (None if not a lexical hit).
        vector_score: Cosine similarity (None if not a vector hit).
        display_name: Name of the owning record, for citations.
    """

    chunk: Chunk
    score: float
    lexical_score: float | None = None
    vector_score: float | None = None
    display_name: str = ""


def retrieve(
    scope_id: str,
    query: str,
    k: int,
    repo: Repository,
    embedder: Embedder | None = None,
    config: RetrieverConfig | None = None,
    time_range: TimeRange | None = None,
) -> list[ScoredChunk]:
    """Return the *k* best chunks in *scope_id* for *query*, best-first.

    Passing ``embedder=None`` runs the lexical channel only. An explicit
    *time_range* restricts MEMORY chunks even when ``temporal_filter`` is off;
    otherwise the range is parsed from the query when the filter is on.
    """
    config = config or RetrieverConfig()
    query = normalize(query or "")
    if k <= 0 or not query:
        return []
    if time_range is None and config.temporal_filter:
        time_range = parse_time_range(query)

    lexical = _lexical_candidates(scope_id, query, repo, config)
    vector = _vector_candidates(scope_id, query, repo, embedder, config)

    records: dict[str, IndexRecord | None] = {}
    merged = _merge(lexical, vector, config)
    if time_range is not None:
        merged = _within(merged, time_range, records, repo)
        logger.debug("Time filter %s kept %d candidates", time_range.label, len(merged))
    ranked = _rank(merged)[:k]
    _attach_display_names(ranked, records, repo)
    if config.track_access and ranked:
        repo.touch_units([sc.chunk.parent_id for sc in ranked])
    return ranked


# ------------------------------------------------------------------
# Channels
# ------------------------------------------------------------------


def _lexical_candidates(
    scope_id: str, query: str, repo: Repository, config: RetrieverConfig
) -> dict[int, tuple[Chunk, float]]:
    hits = repo.search_fts(scope_id, query, limit=config.candidate_limit)
    if not hits:
        return {}
    raw = [-score for _, score in hits]
    best = max(raw)
    out: dict[int, tuple[Chunk, float]] = {}
    for (chunk, _), value in zip(hits, raw):
        out[chunk.id] = (chunk, value / best if best > 0 else 1.0)
    return out


def _vector_candidates(
    scope_id: str,
    query: str,
    repo: Repository,
    embedder: Embedder | None,
    config: RetrieverConfig,
) -> dict[int, tuple[Chunk, float]]:
    if embedder is None:
        return {}
    try:
        query_vector = embedder.embed_query(query)
    except EmbeddingError as exc:
        logger.warning("Query embedding failed, using lexical results only: %s", exc)
        return {}

    q = quantize(query_vector)
    if q.dim == 0 or is_zero(q):
        return {}

    chunks = repo.vector_chunks(scope_id, q.dim)
    if not chunks:
        return {}
    matrix = np.stack([np.frombuffer(c.vector, dtype=np.int8) for c in chunks])
    scores = cosine_similarities(q, matrix)

    hits = [
        (chunk, float(score))
        for chunk, score in zip(chunks, scores)
        if score > config.min_vector_score
    ]
    hits.sort(key=lambda h: (-h[1], h[0].id))
    return {chunk.id: (chunk, score) for chunk, score in hits[: config.candidate_limit]}


# ------------------------------------------------------------------
# Merge + rank
# ------------------------------------------------------------------


def _merge(
    lexical: dict[int, tuple[Chunk, float]],
    vector: dict[int, tuple[Chunk, float]],
    config: RetrieverConfig,
) -> list[ScoredChunk]:
    merged: list[ScoredChunk] = []
    for chunk_id in set(lexical) | set(vector):
        lex = lexical.get(chunk_id)
        vec = vector.get(chunk_id)
        if lex is not None and vec is not None:
            score = config.lexical_weight * lex[1] + config.vector_weight * vec[1]
        elif lex is not None:
            score = lex[1]
        else:
            score = vec[1]  # type: ignore[index]
        chunk = (lex or vec)[0]  # type: ignore[index]
        merged.append(
            ScoredChunk(
                chunk=chunk,
                score=score,
                lexical_score=lex[1] if lex is not None else None,
                vector_score=vec[1] if vec is not None else None,
            )
        )
    return merged


def _rank(scored: list[ScoredChunk]) -> list[ScoredChunk]:
    """Sort by score desc, then created_at desc, then chunk id asc."""
    out = sorted(scored, key=lambda s: s.chunk.id or 0)
    out.sort(key=lambda s: s.chunk.created_at or "", reverse=True)
    out.sort(key=lambda s: s.score, reverse=True)
    return out


def _within(
    scored: list[ScoredChunk],
    time_range: TimeRange,
    records: dict[str, IndexRecord | None],
    repo: Repository,
) -> list[ScoredChunk]:
    """Drop MEMORY chunks created outside *time_range*; documents pass through."""
    kept: list[ScoredChunk] = []
    for sc in scored:
        record = _record(sc.chunk.record_id, records, repo)
        if record is not None and record.source_kind != SourceKind.MEMORY:
            kept.append(sc)
            continue
        moment = _parse_timestamp(sc.chunk.created_at)
        if moment is not None and time_range.contains(moment):
            kept.append(sc)
    return kept


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Naive timestamps are stored as UTC.
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def _record(
    record_id: str, records: dict[str, IndexRecord | None], repo: Repository
) -> IndexRecord | None:
    if record_id not in records:
        records[record_id] = repo.get_record(record_id)
    return records[record_id]


def _attach_display_names(
    ranked: list[ScoredChunk], records: dict[str, IndexRecord | None], repo: Repository
) -> None:
    for sc in ranked:
        record = _record(sc.chunk.record_id, records, repo)
        sc.display_name = record.display_name if record else sc.chunk.record_id
