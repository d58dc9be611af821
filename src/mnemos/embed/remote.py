"""Remote embedder backed by ``litellm.embedding()``.

Every request carries a timeout. Failures are classified:
  transient  timeout, connection error, HTTP 408/425/429, HTTP 5xx  -> retryable
  permanent  any other 4xx, malformed response                 -> raised at once

``embed()`` retries transient failures itself with exponential backoff:
``min(backoff_max, backoff_base * 2**attempt)``. ``embed_query()`` and
``embed_batch()`` make a single attempt. Batch retries belong to the indexer,
which sleeps outside the shared concurrency slot, so a batch costs at most
``indexer.max_attempts`` provider calls.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable

import litellm

from mnemos.embed.base import Embedder, EmbeddingResult
from mnemos.errors import (
    EmbeddingError,
    PermanentEmbeddingError,
    TransientEmbeddingError,
)

litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({408, 425, 429})

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # local, no key required
}


def validate_api_key(model: str) -> None:
    """Raise PermanentEmbeddingError if *model*'s provider key is not set.

    Args:
        model: LiteLLM model string in 'provider/model' format.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise PermanentEmbeddingError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def classify_error(exc: BaseException) -> EmbeddingError:
    """Map a provider exception onto the transient/permanent taxonomy."""
    if isinstance(exc, EmbeddingError):
        return exc
    if isinstance(exc, (litellm.Timeout, litellm.APIConnectionError, TimeoutError, ConnectionError)):
        return TransientEmbeddingError(f"{type(exc).__name__}: {exc}")

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status >= 500 or status in _RETRYABLE_STATUS:
            return TransientEmbeddingError(f"HTTP {status}: {exc}", status_code=status)
        if 400 <= status < 500:
            return PermanentEmbeddingError(f"HTTP {status}: {exc}", status_code=status)
    # Unknown failures are assumed to be network-level.
    return TransientEmbeddingError(f"{type(exc).__name__}: {exc}")


class RemoteEmbedder(Embedder):
    """Embed text through any LiteLLM-supported embedding provider.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        timeout: Per-request timeout in seconds.
        max_retries: Extra attempts after the first for transient failures in
            ``embed()``.
        backoff_base: First backoff delay in seconds.
        backoff_max: Upper bound for a single backoff delay.
        sleep: Injected for tests; defaults to ``time.sleep``.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep

    def embed(self, text: str) -> list[float]:
        return self._request([text], retries=self.max_retries)[0]

    def embed_query(self, text: str) -> list[float]:
        return self._request([text], retries=0)[0]

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        if not texts:
            return []
        try:
            vectors = self._request(texts, retries=0)
        except EmbeddingError as exc:
            return [EmbeddingResult(error=exc) for _ in texts]
        return [EmbeddingResult(vector=v) for v in vectors]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, texts: list[str], retries: int = 0) -> list[list[float]]:
        validate_api_key(self.model)
        attempt = 0
        while True:
            try:
                response = litellm.embedding(
                    model=self.model, input=texts, timeout=self.timeout
                )
            except Exception as exc:
                err = classify_error(exc)
                if not err.retryable or attempt >= retries:
                    raise err from exc
                delay = min(self.backoff_max, self.backoff_base * (2 ** attempt))
                logger.warning(
                    "Embedding request failed (%s); retry %d/%d in %.1fs",
                    err, attempt + 1, retries, delay,
                )
                self._sleep(delay)
                attempt += 1
                continue
            return _parse_response(response, expected=len(texts))


def _parse_response(response: Any, expected: int) -> list[list[float]]:
    try:
        vectors = [list(map(float, item["embedding"])) for item in response.data]
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise PermanentEmbeddingError(f"Malformed embedding response: {exc}") from exc
    if len(vectors) != expected:
        raise PermanentEmbeddingError(
            f"Provider returned {len(vectors)} embeddings for {expected} inputs"
        )
    if any(not v for v in vectors):
        raise PermanentEmbeddingError("Provider returned an empty embedding")
    return vectors
