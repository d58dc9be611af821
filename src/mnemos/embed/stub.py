"""Deterministic offline embedder (feature hashing).

Each lower-cased word token is hashed with blake2b into one of ``dimensions``
buckets with a +/-1 sign; the bag is L2-normalised. Identical texts always
map to identical vectors and texts that share words land close together,
which is enough for tests and for running without network access.
"""

from __future__ import annotations

import hashlib
import math
import re

from mnemos.embed.base import Embedder

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class HashEmbedder(Embedder):
    """Cheap, consistent hash-to-vector embedder."""

    def __init__(self, dimensions: int = 256) -> None:
        if dimensions < 1:
            raise ValueError("dimensions must be >= 1")
        self.dimensions = dimensions
        self.model = f"stub/hash-{dimensions}"

    def embed(self, text: str) -> list[float]:
        vec = [0.0] * self.dimensions
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0.0:
            return vec
        return [v / norm for v in vec]
