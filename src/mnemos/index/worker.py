"""Background worker threads draining the durable ``index_jobs`` queue.

Each thread opens its own SQLite connection and loops: claim the oldest
PENDING job whose scope has nothing RUNNING, run the indexing pass, mark the
job DONE or FAILED. A ``threading.Event`` wakes idle threads as soon as the
ingestor queues something; otherwise they poll every ``poll_interval``
seconds. On start, jobs left RUNNING by an unclean shutdown go back to
PENDING so their records resume from the last upserted chunk, unless the
record already reached READY or FAILED; those jobs are only closed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from mnemos.config import ChunkingCfg, IndexerCfg
from mnemos.db.connection import Database
from mnemos.db.models import IndexJob, IndexStatus
from mnemos.db.repository import Repository
from mnemos.db.schema import initialize
from mnemos.embed.base import Embedder
from mnemos.index.pipeline import IndexPipeline, ProgressCallback

logger = logging.getLogger(__name__)


class IndexWorker:
    """Pool of indexing threads sharing one embedder.

    Args:
        db_path: SQLite database file.
        embedder: Shared embedder; wrap it in ``ThrottledEmbedder`` to cap
            concurrent provider calls.
        chunking: Chunk window configuration.
        indexer: Worker count, batch size, retry and polling configuration.
        on_progress: Forwarded to every ``IndexPipeline``.
    """

    def __init__(
        self,
        db_path: Path | str,
        embedder: Embedder,
        chunking: ChunkingCfg | None = None,
        indexer: IndexerCfg | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.db = Database(db_path)
        self.embedder = embedder
        self.chunking = chunking or ChunkingCfg()
        self.indexer = indexer or IndexerCfg()
        self._on_progress = on_progress
        self._wakeup = threading.Event()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """Recover in-flight jobs and start ``indexer.workers`` daemon threads."""
        if self.running:
            return
        self._stop.clear()
        with self.db as conn:
            initialize(conn)
            self._recover_inflight_jobs(Repository(conn))
        self._threads = [
            threading.Thread(
                target=self._worker_loop, daemon=True, name=f"mnemos-indexer-{i}"
            )
            for i in range(max(1, self.indexer.workers))
        ]
        for thread in self._threads:
            thread.start()
        logger.debug("Started %d indexing thread(s)", len(self._threads))

    def wake(self) -> None:
        """Signal idle threads that new work was queued."""
        self._wakeup.set()

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the threads after their current job and wait up to *timeout* seconds each."""
        self._stop.set()
        self._wakeup.set()
        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=timeout)
        self._threads = []

    def run_pending(self) -> int:
        """Drain the queue on the calling thread. Returns the number of jobs run.

        Used by the CLI and tests instead of background threads.
        """
        conn = self.db.connect()
        try:
            initialize(conn)
            repo = Repository(conn)
            if not self.running:
                self._recover_inflight_jobs(repo)
            pipeline = self._pipeline(repo)
            count = 0
            while (job := repo.claim_next_job()) is not None:
                self._process_job(repo, pipeline, job)
                count += 1
            return count
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pipeline(self, repo: Repository) -> IndexPipeline:
        return IndexPipeline(
            repo,
            self.embedder,
            self.chunking,
            self.indexer,
            on_progress=self._on_progress,
        )

    def _recover_inflight_jobs(self, repo: Repository) -> None:
        recovered = repo.recover_inflight_jobs()
        if recovered:
            logger.warning("Recovered %d interrupted indexing job(s)", recovered)

    def _worker_loop(self) -> None:
        conn = self.db.connect()
        try:
            repo = Repository(conn)
            pipeline = self._pipeline(repo)
            while not self._stop.is_set():
                try:
                    job = repo.claim_next_job()
                except Exception:
                    logger.exception("Could not claim an indexing job")
                    job = None
                if job is None:
                    self._wakeup.wait(timeout=self.indexer.poll_interval)
                    self._wakeup.clear()
                    continue
                try:
                    self._process_job(repo, pipeline, job)
                except Exception:
                    logger.exception("Could not record the outcome of job %d", job.id)
        finally:
            conn.close()

    def _process_job(self, repo: Repository, pipeline: IndexPipeline, job: IndexJob) -> None:
        try:
            record = pipeline.run(job.record_id)
        except Exception as exc:
            logger.exception("Indexing job %d for record %s crashed", job.id, job.record_id)
            self._fail_record(repo, job.record_id, f"{type(exc).__name__}: {exc}")
            repo.fail_job(job.id, str(exc))
            return

        if record.status == IndexStatus.READY:
            repo.complete_job(job.id)
        else:
            repo.fail_job(job.id, record.error_message or "indexing failed")

    def _fail_record(self, repo: Repository, record_id: str, message: str) -> None:
        record = repo.get_record(record_id)
        if record is None or record.status != IndexStatus.INDEXING:
            return
        repo.transition(record_id, IndexStatus.FAILED, error_message=message)
