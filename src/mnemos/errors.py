"""Exception taxonomy for the mnemos retrieval engine.

ValidationError is raised synchronously before anything is queued.
EmbeddingError subclasses tell the indexer whether a failure may be retried.
StoreError wraps persistence failures and always propagates to the caller.
"""

from __future__ import annotations


class MnemosError(Exception):
    """Base error for all mnemos exceptions."""


class ValidationError(MnemosError):
    """Raised when ingested input is empty, oversized or otherwise unusable."""


class EmbeddingError(MnemosError):
    """Raised when the embedding provider cannot return a vector."""

    retryable = False

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientEmbeddingError(EmbeddingError):
    """Network, timeout, rate-limit or 5xx failure. Safe to retry."""

    retryable = True


class PermanentEmbeddingError(EmbeddingError):
    """4xx or malformed request/response. Retrying will not help."""


class StoreError(MnemosError):
    """Raised when the SQLite store rejects a read or write."""
