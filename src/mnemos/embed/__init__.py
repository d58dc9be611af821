"""Embedders and int8 vector quantization."""

from mnemos.embed.base import Embedder, EmbeddingResult, ThrottledEmbedder
from mnemos.embed.factory import build_embedder
from mnemos.embed.quantizer import QuantizedVector, cosine_similarity, quantize
from mnemos.embed.remote import RemoteEmbedder
from mnemos.embed.stub import HashEmbedder

__all__ = [
    "Embedder",
    "EmbeddingResult",
    "HashEmbedder",
    "QuantizedVector",
    "RemoteEmbedder",
    "ThrottledEmbedder",
    "build_embedder",
    "cosine_similarity",
    "quantize",
]
