from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.enums import JobStatus, JobType
from creditshop.models.job import Job

RETRY_BASE_SEC = 30
RETRY_MAX_SEC = 15 * 60


def retry_delay(attempts: int) -> int:
    """Seconds before a push that has failed `attempts` times is tried again."""
    return min(RETRY_BASE_SEC * (2 ** max(attempts - 1, 0)), RETRY_MAX_SEC)


class JobRepo:
    """Outbox of LINE pushes. Rows are written in the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def enqueue(self, type: str, payload: dict, run_at: datetime | None = None, max_attempts: int = 5) -> Job:
        job = Job(type=type, payload=payload, run_at=run_at or datetime.now(timezone.utc), max_attempts=max_attempts)
        self.session.add(job)
        await self.session.flush()
        return job

    async def enqueue_push(self, to: str, messages: list[dict] | list[str]) -> Job:
        """Queue a LINE push. Plain strings become text messages."""
        msgs = [{"type": "text", "text": m} if isinstance(m, str) else m for m in messages]
        return await self.enqueue(JobType.push_message.value, {"to": to, "messages": msgs})

    async def claim_due(self, limit: int, lease_sec: int) -> list[Job]:
        """Lock due pushes and flip them to running; concurrent workers skip locked rows.

        A push left `running` past its lease (worker crashed or was cancelled
        mid-send) is due again.
        """
        now = datetime.now(timezone.utc)
        q = (
            select(Job)
            .where(
                or_(
                    and_(Job.status == JobStatus.queued.value, Job.run_at <= now),
                    and_(Job.status == JobStatus.running.value, Job.locked_at < now - timedelta(seconds=lease_sec)),
                )
            )
            .order_by(Job.run_at, Job.id)
            .with_for_update(skip_locked=True)
            .limit(limit)
        )
        jobs = list((await self.session.execute(q)).scalars().all())
        if jobs:
            await self.session.execute(
                update(Job)
                .where(Job.id.in_([j.id for j in jobs]))
                .values(status=JobStatus.running.value, locked_at=now)
                .execution_options(synchronize_session=False)
            )
        return jobs

    async def complete(self, job_id: int) -> None:
        """Mark a push delivered. The message text is dropped; it may carry sold credentials."""
        job = await self.session.get(Job, job_id)
        if job is None:
            return
        job.status = JobStatus.done.value
        job.locked_at = None
        job.payload = {"to": (job.payload or {}).get("to"), "delivered": len((job.payload or {}).get("messages") or [])}
        await self.session.flush()

    async def release_claim(self, job_id: int) -> None:
        """Hand an interrupted push back to the queue without counting an attempt."""
        await self.session.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.running.value)
            .values(status=JobStatus.queued.value, locked_at=None)
            .execution_options(synchronize_session=False)
        )

    async def record_failure(self, job_id: int, error: str) -> Job | None:
        """Count a failed delivery; requeue with backoff until max_attempts, then mark failed."""
        job = await self.session.get(Job, job_id)
        if job is None:
            return None
        job.attempts += 1
        job.last_error = error[:4000]
        job.locked_at = None
        if job.attempts >= job.max_attempts:
            job.status = JobStatus.failed.value
        else:
            job.status = JobStatus.queued.value
            job.run_at = datetime.now(timezone.utc) + timedelta(seconds=retry_delay(job.attempts))
        await self.session.flush()
        return job

    async def list_by_type(self, job_type: str, *, status: str | None = None) -> list[Job]:
        q = select(Job).where(Job.type == job_type).order_by(Job.id)
        if status:
            q = q.where(Job.status == status)
        res = await self.session.execute(q)
        return list(res.scalars().all())
