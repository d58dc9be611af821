"""Symmetric int8 quantization of embedding vectors.

scale = max(|v_i|) / 127, q_i = clip(round(v_i / scale), -127, 127).
Per-element reconstruction error is bounded by scale / 2. Cosine similarity
is computed on the integer arrays directly; the scales cancel out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

_QMAX = 127


@dataclass(frozen=True)
class QuantizedVector:
    values: np.ndarray  # int8, shape (dim,)
    scale: float

    @property
    def dim(self) -> int:
        return int(self.values.shape[0])

    def to_blob(self) -> bytes:
        return self.values.astype(np.int8).tobytes()

    @classmethod
    def from_blob(cls, blob: bytes, scale: float) -> "QuantizedVector":
        return cls(values=np.frombuffer(blob, dtype=np.int8).copy(), scale=float(scale))


def quantize(vector: Sequence[float] | np.ndarray) -> QuantizedVector:
    """Quantize a float vector to int8 plus a scale factor.

    An all-zero vector gets scale 1.0 and all-zero values.
    """
    arr = np.asarray(vector, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"expected a 1-D vector, got shape {arr.shape}")
    if arr.size == 0:
        return QuantizedVector(values=np.zeros(0, dtype=np.int8), scale=1.0)

    max_abs = float(np.max(np.abs(arr)))
    scale = max_abs / _QMAX if max_abs > 0.0 else 1.0
    q = np.clip(np.rint(arr / scale), -_QMAX, _QMAX).astype(np.int8)
    return QuantizedVector(values=q, scale=scale)


def dequantize(q: QuantizedVector) -> np.ndarray:
    """Reconstruct an approximate float vector."""
    return q.values.astype(np.float64) * q.scale


def is_zero(q: QuantizedVector) -> bool:
    return not np.any(q.values)


def cosine_similarity(
    qa: np.ndarray, scale_a: float, qb: np.ndarray, scale_b: float
) -> float:
    """Cosine similarity of two quantized vectors, computed in integer space.

    Equivalent to the cosine of the dequantized vectors for positive scales.
    Returns 0.0 when either vector is all zeros.

    Raises:
        ValueError: If the vectors differ in length.
    """
    a = np.asarray(qa, dtype=np.int64)
    b = np.asarray(qb, dtype=np.int64)
    if a.shape != b.shape:
        raise ValueError(f"dimension mismatch: {a.shape} vs {b.shape}")

    norm_a = int(np.dot(a, a))
    norm_b = int(np.dot(b, b))
    if norm_a == 0 or norm_b == 0 or scale_a == 0 or scale_b == 0:
        return 0.0
    dot = int(np.dot(a, b)) * scale_a * scale_b
    return float(dot / ((norm_a ** 0.5) * scale_a * (norm_b ** 0.5) * scale_b))


def cosine_similarities(query: QuantizedVector, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against every row of an int8 *matrix*.

    Rows that are all zeros score 0.0. Scales are positive by construction,
    so only the integer values are needed.
    """
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)
    m = matrix.astype(np.int64)
    q = query.values.astype(np.int64)
    if m.shape[1] != q.shape[0]:
        raise ValueError(f"dimension mismatch: {m.shape[1]} vs {q.shape[0]}")

    q_norm = float(np.sqrt(np.dot(q, q)))
    if q_norm == 0.0:
        return np.zeros(m.shape[0], dtype=np.float64)
    row_norms = np.sqrt(np.einsum("ij,ij->i", m, m).astype(np.float64))
    dots = (m @ q).astype(np.float64)
    out = np.zeros(m.shape[0], dtype=np.float64)
    nz = row_norms > 0.0
    out[nz] = dots[nz] / (row_norms[nz] * q_norm)
    return out
