from __future__ import annotations

import threading

from conftest import make_document, make_job
from lectern.core.time import utc_iso_seconds_ago
from lectern.domain.models.ingestion import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PAUSED,
    JOB_QUEUED,
    JOB_RUNNING,
    JobProgressPatch,
)


def test_claim_from_empty_queue_returns_none(repos) -> None:
    assert repos.jobs.claim_next() is None


def test_claim_returns_job_once(repos) -> None:
    document = make_document(repos.documents)
    job = make_job(repos.jobs, document.id)

    claimed = repos.jobs.claim_next()
    assert claimed is not None
    assert claimed.id == job.id
    assert claimed.status == JOB_RUNNING
    assert claimed.started_at is not None
    assert claimed.last_heartbeat_at is not None

    assert repos.jobs.claim_next() is None


def test_claim_takes_oldest_job_first(repos) -> None:
    document = make_document(repos.documents)
    newer = make_job(repos.jobs, document.id, created_at="2026-02-01T00:00:00+00:00")
    older = make_job(repos.jobs, document.id, created_at="2026-01-01T00:00:00+00:00")

    assert repos.jobs.claim_next().id == older.id
    assert repos.jobs.claim_next().id == newer.id


def test_concurrent_claims_have_one_winner(repos) -> None:
    document = make_document(repos.documents)
    job = make_job(repos.jobs, document.id)

    barrier = threading.Barrier(8)
    results: list[object] = []
    lock = threading.Lock()

    def _claim() -> None:
        barrier.wait()
        claimed = repos.jobs.claim_next()
        with lock:
            results.append(claimed)

    threads = [threading.Thread(target=_claim) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    winners = [item for item in results if item is not None]
    assert len(results) == 8
    assert len(winners) == 1
    assert winners[0].id == job.id


def test_concurrent_claims_split_many_jobs_without_overlap(repos) -> None:
    document = make_document(repos.documents)
    job_ids = {make_job(repos.jobs, document.id).id for _ in range(12)}

    claimed: list[str] = []
    lock = threading.Lock()

    def _drain() -> None:
        while True:
            job = repos.jobs.claim_next()
            if job is None:
                return
            with lock:
                claimed.append(job.id)

    threads = [threading.Thread(target=_drain) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(claimed) == sorted(job_ids)


def test_update_progress_touches_only_named_fields(repos) -> None:
    document = make_document(repos.documents)
    job = make_job(repos.jobs, document.id)

    updated = repos.jobs.update_progress(job.id, JobProgressPatch(total_pages=12, total_chunks=40))
    assert updated.total_pages == 12
    assert updated.total_chunks == 40
    assert updated.status == JOB_QUEUED

    updated = repos.jobs.update_progress(
        job.id,
        JobProgressPatch(chunks_done=10, next_chunk_index=10),
    )
    assert updated.total_pages == 12
    assert updated.chunks_done == 10
    assert updated.progress_percent == 25.0

    assert repos.jobs.update_progress("missing", JobProgressPatch(chunks_done=1)) is None


def test_mark_stalled_pauses_only_quiet_jobs(repos) -> None:
    document = make_document(repos.documents)
    stale = make_job(repos.jobs, document.id, created_at="2026-01-01T00:00:00+00:00")
    fresh = make_job(repos.jobs, document.id, created_at="2026-01-02T00:00:00+00:00")
    repos.jobs.claim_next()
    repos.jobs.claim_next()
    repos.jobs.update_progress(stale.id, JobProgressPatch(last_heartbeat_at=utc_iso_seconds_ago(20 * 60)))
    repos.jobs.update_progress(fresh.id, JobProgressPatch(last_heartbeat_at=utc_iso_seconds_ago(60)))

    assert repos.jobs.mark_stalled(10 * 60) == 1

    paused = repos.jobs.get_by_id(stale.id)
    assert paused.status == JOB_PAUSED
    assert paused.error_message == "Job timed out: no heartbeat for 10 minutes"
    untouched = repos.jobs.get_by_id(fresh.id)
    assert untouched.status == JOB_RUNNING
    assert untouched.error_message is None


def test_requeue_preserves_checkpoint_for_paused_and_failed(repos) -> None:
    document = make_document(repos.documents)
    job = make_job(repos.jobs, document.id)
    repos.jobs.claim_next()
    repos.jobs.update_progress(
        job.id,
        JobProgressPatch(status=JOB_FAILED, error_message="boom", next_chunk_index=15, chunks_done=15),
    )

    requeued = repos.jobs.requeue(job.id)

    assert requeued is not None
    assert requeued.status == JOB_QUEUED
    assert requeued.next_chunk_index == 15
    assert requeued.chunks_done == 15
    assert requeued.error_message is None


def test_requeue_is_noop_for_running_and_completed(repos) -> None:
    document = make_document(repos.documents)
    running = make_job(repos.jobs, document.id)
    repos.jobs.claim_next()
    done = make_job(repos.jobs, document.id)
    repos.jobs.update_progress(done.id, JobProgressPatch(status=JOB_COMPLETED))

    assert repos.jobs.requeue(running.id) is None
    assert repos.jobs.requeue(done.id) is None
    assert repos.jobs.get_by_id(running.id).status == JOB_RUNNING
    assert repos.jobs.get_by_id(done.id).status == JOB_COMPLETED


def test_deleting_document_cascades_to_jobs(repos) -> None:
    document = make_document(repos.documents)
    make_job(repos.jobs, document.id)

    assert repos.documents.delete(document.id) is True
    assert repos.jobs.list_for_document(document.id) == []
