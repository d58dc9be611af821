"""mnemos indexer: per-record pipeline and background worker pool."""

from mnemos.index.pipeline import IndexPipeline
from mnemos.index.worker import IndexWorker

__all__ = ["IndexPipeline", "IndexWorker"]
