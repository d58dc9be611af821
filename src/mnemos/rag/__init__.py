"""mnemos read path: hybrid retriever and context assembler."""

from mnemos.rag.assembler import AssembledContext, Citation, assemble
from mnemos.rag.retriever import RetrieverConfig, ScoredChunk, retrieve
from mnemos.rag.temporal import TimeRange, parse_time_range

__all__ = [
    "AssembledContext",
    "Citation",
    "RetrieverConfig",
    "ScoredChunk",
    "TimeRange",
    "assemble",
    "parse_time_range",
    "retrieve",
]
