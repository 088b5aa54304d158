from __future__ import annotations

import time

from conftest import make_document, make_job
from lectern.application.services.stall_reaper import StallReaper
from lectern.core.time import utc_iso_seconds_ago
from lectern.domain.models.ingestion import JOB_PAUSED, JOB_QUEUED, JOB_RUNNING, JobProgressPatch


class _CountingDispatcher:
    def __init__(self) -> None:
        self.calls = 0

    def dispatch_next(self):
        self.calls += 1
        return None


def _stalled_job(repos):
    document = make_document(repos.documents)
    job = make_job(repos.jobs, document.id)
    repos.jobs.claim_next()
    repos.jobs.update_progress(
        job.id,
        JobProgressPatch(last_heartbeat_at=utc_iso_seconds_ago(3600), next_chunk_index=7),
    )
    return job


def test_reap_once_pauses_stalled_jobs(repos) -> None:
    job = _stalled_job(repos)
    dispatcher = _CountingDispatcher()
    reaper = StallReaper(repos.jobs, timeout_seconds=600, interval_seconds=60, dispatcher=dispatcher)

    report = reaper.reap_once()

    assert report.stalled == 1
    assert report.requeued == 0
    assert repos.jobs.get_by_id(job.id).status == JOB_PAUSED
    assert dispatcher.calls == 0


def test_auto_requeue_queues_paused_jobs_and_dispatches(repos) -> None:
    job = _stalled_job(repos)
    dispatcher = _CountingDispatcher()
    reaper = StallReaper(
        repos.jobs,
        timeout_seconds=600,
        interval_seconds=60,
        dispatcher=dispatcher,
        auto_requeue=True,
    )

    report = reaper.reap_once()

    assert report.stalled == 1
    assert report.requeued == 1
    requeued = repos.jobs.get_by_id(job.id)
    assert requeued.status == JOB_QUEUED
    assert requeued.next_chunk_index == 7
    assert dispatcher.calls == 1


def test_healthy_jobs_survive_sweeps(repos) -> None:
    document = make_document(repos.documents)
    job = make_job(repos.jobs, document.id)
    repos.jobs.claim_next()

    report = StallReaper(repos.jobs, timeout_seconds=600, interval_seconds=60).reap_once()

    assert report.stalled == 0
    assert repos.jobs.get_by_id(job.id).status == JOB_RUNNING


def test_background_loop_sweeps_until_shutdown(repos) -> None:
    job = _stalled_job(repos)
    reaper = StallReaper(repos.jobs, timeout_seconds=600, interval_seconds=0.05)

    reaper.start()
    try:
        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline:
            if repos.jobs.get_by_id(job.id).status == JOB_PAUSED:
                break
            time.sleep(0.05)
    finally:
        reaper.shutdown()

    assert repos.jobs.get_by_id(job.id).status == JOB_PAUSED
