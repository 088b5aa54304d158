from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from lectern.application.services.dispatcher import JobDispatcher
from lectern.domain.models.ingestion import JOB_PAUSED
from lectern.infrastructure.db.repos.job_repo import JobRepo

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StallReport:
    stalled: int
    requeued: int


class StallReaper:
    """Pauses RUNNING jobs whose heartbeat went quiet.

    Works only through the job ledger, so it can sweep jobs owned by any
    process sharing the database.
    """

    def __init__(
        self,
        job_repo: JobRepo,
        *,
        timeout_seconds: float,
        interval_seconds: float,
        dispatcher: JobDispatcher | None = None,
        auto_requeue: bool = False,
    ) -> None:
        self.job_repo = job_repo
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = max(0.01, interval_seconds)
        self.dispatcher = dispatcher
        self.auto_requeue = auto_requeue
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None

    def reap_once(self) -> StallReport:
        stalled = self.job_repo.mark_stalled(self.timeout_seconds)
        if stalled:
            logger.warning("Paused %d stalled ingestion job(s)", stalled)

        requeued = 0
        if self.auto_requeue:
            for job in self.job_repo.list(limit=1000, status=JOB_PAUSED):
                if self.job_repo.requeue(job.id) is not None:
                    requeued += 1
            if requeued and self.dispatcher is not None:
                self.dispatcher.dispatch_next()
        return StallReport(stalled=stalled, requeued=requeued)

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop.clear()
        self._worker = threading.Thread(target=self._worker_loop, daemon=True, name="stall-reaper")
        self._worker.start()

    def shutdown(self) -> None:
        self._stop.set()
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=2.0)
        self._worker = None

    def _worker_loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.reap_once()
            except Exception:
                logger.exception("Stall sweep failed")
