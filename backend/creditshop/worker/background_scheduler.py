"""Background scheduler that runs with uvicorn (FastAPI lifespan).

Drains the outbox (LINE pushes) and runs housekeeping in the API process, so
no separate worker process is needed.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from creditshop.bot.router import BotContext, CommandRouter
from creditshop.core.config import settings
from creditshop.core.db import AsyncSessionMaker
from creditshop.line.client import LineMessagingClient
from creditshop.models.enums import JobStatus
from creditshop.repos.job_repo import JobRepo
from creditshop.services.blob_store import build_blob_store
from creditshop.services.conversation_state import ConversationState
from creditshop.services.slip_verifier import SlipVerifier
from creditshop.worker.scheduler import scheduler_tick
from creditshop.worker.tasks import handle_job

log = logging.getLogger(__name__)

_running = False
_task: asyncio.Task | None = None


async def worker_tick(line: LineMessagingClient, sessionmaker=AsyncSessionMaker) -> int:
    """Deliver due outbox pushes. Returns how many were picked up."""
    async with sessionmaker() as session:
        async with session.begin():
            jobs = await JobRepo(session).claim_due(
                limit=settings.WORKER_MAX_JOBS_PER_TICK, lease_sec=settings.WORKER_JOB_LEASE_SEC
            )

    for i, job in enumerate(jobs):
        try:
            async with sessionmaker() as s2:
                async with s2.begin():
                    await handle_job(s2, job.type, job.payload, line=line)
                    await JobRepo(s2).complete(job.id)
        except Exception as e:
            err = f"{type(e).__name__}: {e}"
            async with sessionmaker() as s3:
                async with s3.begin():
                    failed = await JobRepo(s3).record_failure(job.id, error=err)
            if failed is not None and failed.status == JobStatus.failed.value:
                log.error("[background-worker] job %s gave up after %s attempts: %s", job.id, failed.attempts, err)
            else:
                log.warning("[background-worker] job %s failed, will retry: %s\n%s", job.id, err, traceback.format_exc())
        except BaseException:
            # Cancelled or shutting down mid-send: requeue this job and the ones not reached yet.
            async with sessionmaker() as s4:
                async with s4.begin():
                    for pending in jobs[i:]:
                        await JobRepo(s4).release_claim(pending.id)
            log.warning("[background-worker] interrupted, %s job(s) requeued", len(jobs) - i)
            raise
    return len(jobs)


async def _background_loop(line: LineMessagingClient, state: ConversationState | None) -> None:
    log.info("[background-scheduler] started")

    while _running:
        try:
            async with AsyncSessionMaker() as s:
                async with s.begin():
                    await scheduler_tick(s, state)
        except Exception as e:
            log.error("[background-scheduler] scheduler error: %s", e)

        try:
            await worker_tick(line)
        except Exception as e:
            log.error("[background-scheduler] worker error: %s", e)

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL_SEC)

    log.info("[background-scheduler] stopped")


def start_background_scheduler(line: LineMessagingClient, state: ConversationState | None = None) -> None:
    global _running, _task
    if _running:
        return

    _running = True
    _task = asyncio.create_task(_background_loop(line, state))
    log.info("[background-scheduler] task created")


async def stop_background_scheduler() -> None:
    """Stop the background task, giving the current iteration a moment to finish."""
    global _running, _task
    if not _running:
        return

    _running = False
    if _task is not None:
        try:
            await asyncio.wait_for(_task, timeout=10.0)
        except asyncio.TimeoutError:
            _task.cancel()
            try:
                await _task
            except asyncio.CancelledError:
                pass
        _task = None
    log.info("[background-scheduler] task stopped")


@asynccontextmanager
async def lifespan_with_scheduler(app) -> AsyncGenerator[None, None]:
    """FastAPI lifespan: builds the chat bot collaborators and runs the scheduler.

    Usage in main.py:
        from creditshop.worker.background_scheduler import lifespan_with_scheduler
        app = FastAPI(lifespan=lifespan_with_scheduler)
    """
    line = LineMessagingClient()
    verifier = SlipVerifier()
    state = ConversationState(settings.APPROVAL_STATE_TTL_MIN, settings.ADMIN_TARGET_TTL_MIN)
    app.state.bot = CommandRouter(
        BotContext(
            sessionmaker=AsyncSessionMaker,
            line=line,
            verifier=verifier,
            blob_store=build_blob_store(),
            state=state,
        )
    )

    if settings.BACKGROUND_WORKER_ENABLED:
        start_background_scheduler(line, state)

    yield

    await stop_background_scheduler()
    await verifier.aclose()
    await line.aclose()
