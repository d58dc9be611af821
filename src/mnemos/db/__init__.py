"""mnemos store: SQLite connection, migrations, models and repository."""

from mnemos.db.connection import Database
from mnemos.db.migrations import MIGRATIONS, run_migrations
from mnemos.db.models import (
    ChangeEvent,
    Chunk,
    ContentUnit,
    IndexJob,
    IndexRecord,
    IndexStatus,
    JobStatus,
    SourceKind,
)
from mnemos.db.repository import Repository
from mnemos.db.schema import initialize

__all__ = [
    "ChangeEvent",
    "Chunk",
    "ContentUnit",
    "Database",
    "IndexJob",
    "IndexRecord",
    "IndexStatus",
    "JobStatus",
    "MIGRATIONS",
    "Repository",
    "SourceKind",
    "initialize",
    "run_migrations",
]
