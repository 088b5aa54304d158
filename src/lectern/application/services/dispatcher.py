from __future__ import annotations

import logging
import threading
from typing import Callable

from lectern.application.services.ingestion_runner import IngestionRunner
from lectern.domain.models.ingestion import IngestionJob
from lectern.infrastructure.db.repos.job_repo import JobRepo

logger = logging.getLogger(__name__)

Spawn = Callable[[str, Callable[[], None]], None]


class JobDispatcher:
    """Claims the next queued job and hands it to a runner task.

    Each finished run calls back into ``dispatch_next`` so the queue drains
    one job at a time per chain.
    """

    def __init__(
        self,
        job_repo: JobRepo,
        runner: IngestionRunner,
        spawn: Spawn | None = None,
    ) -> None:
        self.job_repo = job_repo
        self.runner = runner
        self._spawn = spawn or self._spawn_thread
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def dispatch_next(self) -> IngestionJob | None:
        job = self.job_repo.claim_next()
        if job is None:
            logger.debug("No queued ingestion jobs")
            return None
        logger.info("Dispatching ingestion job %s for document %s", job.id, job.document_id)
        self._spawn(job.id, lambda: self._run_job(job.id))
        return job

    def join(self, timeout: float | None = None) -> None:
        # Chained runs append new threads while we wait; loop until quiet.
        while True:
            with self._lock:
                pending = [thread for thread in self._threads if thread.is_alive()]
                self._threads = pending
            if not pending:
                return
            for thread in pending:
                thread.join(timeout=timeout)
            if timeout is not None:
                return

    def _run_job(self, job_id: str) -> None:
        try:
            self.runner.run(job_id, on_finished=self.dispatch_next)
        except Exception:
            logger.exception("Background ingestion of job %s failed", job_id)

    def _spawn_thread(self, job_id: str, target: Callable[[], None]) -> None:
        thread = threading.Thread(target=target, daemon=True, name=f"ingestion-{job_id[:8]}")
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()


def run_inline(job_id: str, target: Callable[[], None]) -> None:
    """Synchronous spawn: the dispatch chain drains the queue before returning."""
    target()
