"""Embedder interface shared by the offline stub and the remote provider."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from mnemos.errors import EmbeddingError


@dataclass
class EmbeddingResult:
    """Outcome of embedding one text inside a batch call.

    Exactly one of ``vector`` and ``error`` is set.
    """

    vector: list[float] | None = None
    error: EmbeddingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.vector is not None


class Embedder(ABC):
    """Turns text into fixed-dimension float vectors.

    ``embed()`` raises ``TransientEmbeddingError`` or
    ``PermanentEmbeddingError``. ``embed_batch()`` never raises for provider
    failures; each position carries its own result instead.
    """

    #: Identifier persisted next to each chunk vector.
    model: str = ""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Embed a single text."""

    def embed_query(self, text: str) -> list[float]:
        """Embed a search query with a single provider attempt.

        Remote implementations must not retry or back off here; the caller
        falls back to lexical search instead.
        """
        return self.embed(text)

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Embed *texts*, one result per input, in input order.

        The default implementation calls ``embed()`` per text.
        """
        results: list[EmbeddingResult] = []
        for text in texts:
            try:
                results.append(EmbeddingResult(vector=self.embed(text)))
            except EmbeddingError as exc:
                results.append(EmbeddingResult(error=exc))
        return results


class ThrottledEmbedder(Embedder):
    """Caps concurrent provider calls across every scope and worker thread.

    All workers share one instance, so the semaphore is the single global
    coordination point for embedding traffic. A slot is held for one
    ``embed_query`` or ``embed_batch`` attempt; backoff between batch
    attempts happens in the indexer with no slot held.
    """

    def __init__(self, inner: Embedder, max_concurrent: int = 4) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._inner = inner
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self.max_concurrent = max_concurrent
        self.model = inner.model

    @property
    def inner(self) -> Embedder:
        return self._inner

    def embed(self, text: str) -> list[float]:
        with self._slots:
            return self._inner.embed(text)

    def embed_query(self, text: str) -> list[float]:
        with self._slots:
            return self._inner.embed_query(text)

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        with self._slots:
            return self._inner.embed_batch(texts)
