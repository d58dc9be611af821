"""mnemos ingest path: chunker, text extraction, ingestor."""

from mnemos.ingest.chunker import chunk, clamp_overlap, expected_count
from mnemos.ingest.extract import PageText, extract_pages
from mnemos.ingest.heuristics import Emotion, MemoryKind, memory_metadata, normalize
from mnemos.ingest.ingestor import Ingestor

__all__ = [
    "Emotion",
    "Ingestor",
    "MemoryKind",
    "PageText",
    "chunk",
    "clamp_overlap",
    "expected_count",
    "extract_pages",
    "memory_metadata",
    "normalize",
]
