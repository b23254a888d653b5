"""Durable job queue and its state machine.

queued -> processing -> {completed, failed}. Terminal states are never left,
and nothing moves a job back to queued.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workhub.jobs.schemas import Progress, count_items
from workhub.nodes.registry import record_outcome
from workhub.storage.models import TERMINAL_JOB_STATUSES, Job, JobStatus, utcnow

logger = logging.getLogger(__name__)

WORKER_LOST = "worker lost"


async def enqueue(db: AsyncSession, *, task_type: str, payload: dict[str, Any]) -> Job:
    job = Job(
        task_type=task_type,
        status=JobStatus.queued,
        payload=payload,
        progress=Progress(total=count_items(task_type, payload)).to_wire(),
        result={},
        created_at=utcnow(),
    )
    db.add(job)
    await db.flush()
    logger.info(
        "job_enqueued",
        extra={"tracking_id": job.request_id, "task_type": task_type, "total": job.progress["total"]},
    )
    return job


async def get_job(db: AsyncSession, request_id: str) -> Job | None:
    return await db.get(Job, request_id)


async def next_queued(db: AsyncSession) -> Job | None:
    """Oldest queued job, ties broken by request id."""
    query = (
        select(Job)
        .where(Job.status == JobStatus.queued)
        .order_by(Job.created_at.asc(), Job.request_id.asc())
        .limit(1)
    )
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def claim(db: AsyncSession, request_id: str, *, worker_name: str, machine_id: str | None = None) -> bool:
    """Move a job queued -> processing only if it is still queued."""
    result = await db.execute(
        update(Job)
        .where(Job.request_id == request_id, Job.status == JobStatus.queued)
        .values(status=JobStatus.processing, worker_name=worker_name, machine_id=machine_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def claim_next(db: AsyncSession, *, worker_name: str, machine_id: str | None = None) -> Job | None:
    """Claim the oldest queued job, retrying when another dispatcher wins the race."""
    while True:
        job = await next_queued(db)
        if job is None:
            return None
        if await claim(db, job.request_id, worker_name=worker_name, machine_id=machine_id):
            await db.refresh(job)
            return job
        logger.debug("job_claim_lost", extra={"tracking_id": job.request_id, "worker_name": worker_name})


async def mark_processing(
    db: AsyncSession, request_id: str, worker_name: str, machine_id: str | None = None
) -> bool:
    return await claim(db, request_id, worker_name=worker_name, machine_id=machine_id)


def _bound_elsewhere(job: Job, machine_id: str | None) -> bool:
    return machine_id is not None and job.machine_id is not None and job.machine_id != machine_id


async def record_progress(
    db: AsyncSession,
    request_id: str,
    progress: dict[str, Any],
    *,
    machine_id: str | None = None,
) -> Job | None:
    """Overwrite the progress snapshot. Last write wins.

    Only a processing job accepts progress, and only from the node it is
    bound to; queued jobs move to processing through the dispatcher alone.
    """
    job = await db.get(Job, request_id, populate_existing=True)
    if job is None:
        return None
    if job.status is not JobStatus.processing:
        logger.warning("progress_ignored", extra={"tracking_id": request_id, "status": job.status.value})
        return job
    if _bound_elsewhere(job, machine_id):
        logger.warning(
            "progress_from_unbound_node",
            extra={"tracking_id": request_id, "machine_id": machine_id, "bound_to": job.machine_id},
        )
        return job
    job.progress = Progress.model_validate(progress).to_wire()
    await db.flush()
    return job


async def complete(
    db: AsyncSession,
    request_id: str,
    *,
    result: dict[str, Any],
    success: bool,
    machine_id: str | None,
) -> Job | None:
    """Finish a job and count it once against the node it is bound to.

    machine_id is the reporting node; reports from any node other than the
    bound one are ignored.
    """
    job = await db.get(Job, request_id, populate_existing=True)
    if job is None:
        return None
    if job.status in TERMINAL_JOB_STATUSES:
        logger.warning("duplicate_completion", extra={"tracking_id": request_id, "status": job.status.value})
        return None
    if _bound_elsewhere(job, machine_id):
        logger.warning(
            "completion_from_unbound_node",
            extra={"tracking_id": request_id, "machine_id": machine_id, "bound_to": job.machine_id},
        )
        return None

    job.status = JobStatus.completed if success else JobStatus.failed
    job.result = result
    job.completed_at = utcnow()
    await db.flush()

    bound = job.machine_id or machine_id
    if bound:
        await record_outcome(db, bound, success=success)

    if success:
        logger.info("job_completed", extra={"tracking_id": request_id, "worker_name": job.worker_name})
    else:
        logger.warning(
            "job_failed",
            extra={"tracking_id": request_id, "worker_name": job.worker_name, "error": result.get("error")},
        )
    return job


async def fail_lost(db: AsyncSession, request_id: str, *, machine_id: str | None) -> Job | None:
    """Fail a job whose worker disconnected before reporting back."""
    return await complete(
        db,
        request_id,
        result={"status": "error", "error": WORKER_LOST},
        success=False,
        machine_id=machine_id,
    )


async def count_by_status(db: AsyncSession, *, since=None) -> dict[str, int]:
    query = select(Job.status, func.count()).group_by(Job.status)
    if since is not None:
        query = query.where(Job.created_at >= since)
    rows = (await db.execute(query)).all()
    counts = {status.value: 0 for status in JobStatus}
    for status, count in rows:
        counts[JobStatus(status).value] = count
    return counts


async def count_by_task_type(db: AsyncSession, *, since=None) -> dict[str, int]:
    query = select(Job.task_type, func.count()).group_by(Job.task_type)
    if since is not None:
        query = query.where(Job.created_at >= since)
    rows = (await db.execute(query)).all()
    return {task_type: count for task_type, count in rows}
