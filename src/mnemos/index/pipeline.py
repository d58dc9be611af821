"""Indexing pass for one IndexRecord: chunk, embed, quantize, upsert.

For each content unit, in page order:
1. Split the unit text with the fixed-window chunker.
2. Embed the windows in batches of ``batch_size``. Windows whose stored text,
   offsets and embedding model already match are reused without a call.
3. Quantize each vector to int8 + scale. All-zero vectors are not stored,
   leaving that chunk lexical-only.
4. Upsert the batch keyed by ``(parent_id, sequence_index)`` so a re-run
   after a crash overwrites rather than duplicates.
5. Drop chunks left over from a previous, longer pass.

Transient embedding failures are retried up to ``max_attempts`` per batch with
bounded exponential backoff; a permanent failure or exhausted retries moves
the record to FAILED with the provider's message.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from mnemos.config import ChunkingCfg, IndexerCfg
from mnemos.db.models import Chunk, ContentUnit, IndexRecord, IndexStatus
from mnemos.db.repository import Repository
from mnemos.embed.base import Embedder
from mnemos.embed.quantizer import is_zero, quantize
from mnemos.errors import EmbeddingError
from mnemos.ingest.chunker import chunk

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


class IndexPipeline:
    """Run indexing passes against one Repository.

    Args:
        repo: Repository bound to the calling thread's connection.
        embedder: Shared embedder (usually a ``ThrottledEmbedder``).
        chunking: Window size and overlap.
        indexer: Batch size and retry policy.
        on_progress: Called as ``(record_id, done, total)`` after each batch.
        sleep: Injected for tests; defaults to ``time.sleep``.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        chunking: ChunkingCfg | None = None,
        indexer: IndexerCfg | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repo = repo
        self.embedder = embedder
        self.chunking = chunking or ChunkingCfg()
        self.indexer = indexer or IndexerCfg()
        self._on_progress = on_progress
        self._sleep = sleep

    def run(self, record_id: str) -> IndexRecord:
        """Index every unit of *record_id* and return the final record state.

        Raises:
            StoreError: If the record is missing or a write fails. Embedding
                failures do not raise; they end in a FAILED record.
        """
        record = self.repo.transition(record_id, IndexStatus.INDEXING)
        units = self.repo.list_units(record_id)
        plans = [
            (unit, chunk(unit.raw_text, self.chunking.max_chars, self.chunking.overlap))
            for unit in units
        ]
        total = sum(len(windows) for _, windows in plans)
        self.repo.set_progress(record_id, 0, total)
        logger.info(
            "Indexing '%s' (%s): %d units, %d chunks",
            record.display_name, record_id, len(units), total,
        )

        done = 0
        try:
            for unit, windows in plans:
                done = self._index_unit(record_id, unit, windows, done, total)
        except EmbeddingError as exc:
            logger.warning("Indexing failed for %s: %s", record_id, exc)
            return self.repo.transition(
                record_id, IndexStatus.FAILED, error_message=_describe(exc)
            )

        final = self.repo.transition(record_id, IndexStatus.READY, total_chunks=total)
        logger.info("Indexed '%s': %d chunks ready", final.display_name, total)
        return final

    # ------------------------------------------------------------------
    # Per-unit work
    # ------------------------------------------------------------------

    def _index_unit(
        self,
        record_id: str,
        unit: ContentUnit,
        windows: list[tuple[int, str]],
        done: int,
        total: int,
    ) -> int:
        existing = {c.sequence_index: c for c in self.repo.chunks_for_unit(unit.id)}
        model = self.embedder.model
        batch_size = max(1, self.indexer.batch_size)

        for start in range(0, len(windows), batch_size):
            batch = windows[start : start + batch_size]
            chunks: list[Chunk] = []
            to_embed: list[Chunk] = []
            for offset, (char_start, text) in enumerate(batch):
                seq = start + offset
                prior = existing.get(seq)
                if (
                    prior is not None
                    and prior.text == text
                    and prior.char_start == char_start
                    and prior.embedding_model == model
                ):
                    continue
                c = Chunk(
                    parent_id=unit.id,
                    record_id=record_id,
                    scope_id=unit.scope_id,
                    page_number=unit.page_number,
                    sequence_index=seq,
                    text=text,
                    char_start=char_start,
                    char_end=char_start + len(text),
                    created_at=unit.created_at,
                    embedding_model=model,
                )
                chunks.append(c)
                to_embed.append(c)

            if to_embed:
                vectors = self._embed_with_retry([c.text for c in to_embed])
                for c, vector in zip(to_embed, vectors):
                    q = quantize(vector)
                    if q.dim and not is_zero(q):
                        c.vector = q.to_blob()
                        c.vector_scale = q.scale
                        c.vector_dim = q.dim
                self.repo.upsert_chunks(chunks)

            done += len(batch)
            self.repo.set_progress(record_id, done, total)
            if self._on_progress is not None:
                self._on_progress(record_id, done, total)

        pruned = self.repo.prune_chunks(unit.id, len(windows))
        if pruned:
            logger.debug("Pruned %d stale chunks of unit %s", pruned, unit.id)
        return done

    def _embed_with_retry(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, retrying only the positions that failed transiently."""
        vectors: list[list[float] | None] = [None] * len(texts)
        pending = list(range(len(texts)))
        attempt = 1
        while True:
            results = self.embedder.embed_batch([texts[i] for i in pending])
            failed: list[int] = []
            errors: list[EmbeddingError] = []
            for idx, result in zip(pending, results):
                if result.ok:
                    vectors[idx] = result.vector
                    continue
                err = result.error or EmbeddingError("Embedder returned no vector")
                if not err.retryable:
                    raise err
                failed.append(idx)
                errors.append(err)
            if not failed:
                return vectors  # type: ignore[return-value]
            if attempt >= self.indexer.max_attempts:
                raise errors[-1]
            delay = min(
                self.indexer.backoff_max,
                self.indexer.backoff_base * (2 ** (attempt - 1)),
            )
            logger.warning(
                "%d/%d embeddings failed (%s); attempt %d/%d, retrying in %.1fs",
                len(failed), len(texts), errors[-1], attempt, self.indexer.max_attempts, delay,
            )
            self._sleep(delay)
            pending = failed
            attempt += 1


def _describe(exc: EmbeddingError) -> str:
    kind = "transient" if exc.retryable else "permanent"
    return f"Embedding failed ({kind}): {exc}"

