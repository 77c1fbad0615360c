from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.line.client import LineMessagingClient
from creditshop.models.enums import JobType

log = logging.getLogger(__name__)


async def handle_job(session: AsyncSession, job_type: str, payload: dict, *, line: LineMessagingClient) -> None:
    if job_type == JobType.push_message.value:
        await _job_push_message(payload, line)
        return
    raise ValueError(f"Unknown job type: {job_type}")


async def _job_push_message(payload: dict, line: LineMessagingClient) -> None:
    to = payload.get("to")
    messages = payload.get("messages") or []
    if not to or not messages:
        raise ValueError("push_message job without recipient or messages")
    await line.push(to, messages)
    log.info("[worker] pushed %s message(s) to %s", len(messages), to)
