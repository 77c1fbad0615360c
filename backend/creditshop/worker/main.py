"""Standalone worker: drains the outbox when the API runs with BACKGROUND_WORKER_ENABLED=false."""

from __future__ import annotations

import asyncio
import logging

from creditshop.core.config import settings
from creditshop.core.db import AsyncSessionMaker
from creditshop.core.logs import configure_logging
from creditshop.line.client import LineMessagingClient
from creditshop.worker.background_scheduler import worker_tick
from creditshop.worker.scheduler import scheduler_tick

log = logging.getLogger("creditshop.worker")


async def main() -> None:
    configure_logging()
    line = LineMessagingClient()
    log.info("[worker] started")
    try:
        while True:
            try:
                async with AsyncSessionMaker() as s:
                    async with s.begin():
                        await scheduler_tick(s)
            except Exception as e:
                log.error("[worker] scheduler error: %s", e)

            await worker_tick(line)
            await asyncio.sleep(settings.WORKER_POLL_INTERVAL_SEC)
    finally:
        await line.aclose()


if __name__ == "__main__":
    asyncio.run(main())
