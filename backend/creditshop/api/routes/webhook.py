from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from creditshop.api.deps import get_command_router
from creditshop.bot.router import CommandRouter
from creditshop.core import json
from creditshop.core.config import settings
from creditshop.line.signature import check_signature

log = logging.getLogger(__name__)

router = APIRouter()


async def handle_events(bot: CommandRouter, events: list[dict]) -> None:
    for event in events:
        try:
            await bot.handle_event(event)
        except Exception:
            # One broken event must not stop the rest of the batch.
            log.exception("[webhook] event %s failed", event.get("webhookEventId"))


@router.post("/line")
async def line_webhook(
    request: Request,
    background: BackgroundTasks,
    bot: CommandRouter = Depends(get_command_router),
):
    body = await request.body()
    if not check_signature(request.headers.get("X-Line-Signature"), settings.LINE_CHANNEL_SECRET, body):
        log.warning("[webhook] rejected request with bad signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
    try:
        payload = json.loads(body) if body else {}
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    events = (payload.get("events") or []) if isinstance(payload, dict) else []
    if events:
        background.add_task(handle_events, bot, events)
    return {"ok": True}
