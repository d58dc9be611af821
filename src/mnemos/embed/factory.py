"""Build the configured embedder."""

from __future__ import annotations

from mnemos.config import EmbeddingCfg
from mnemos.embed.base import Embedder
from mnemos.embed.remote import RemoteEmbedder
from mnemos.embed.stub import HashEmbedder


def build_embedder(cfg: EmbeddingCfg) -> Embedder:
    """Return a HashEmbedder for ``provider: stub``, else a RemoteEmbedder."""
    if cfg.provider == "stub":
        return HashEmbedder(dimensions=cfg.dimensions)
    return RemoteEmbedder(
        cfg.model,
        timeout=cfg.timeout,
        max_retries=cfg.max_retries,
        backoff_base=cfg.backoff_base,
        backoff_max=cfg.backoff_max,
    )
