from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core.config import settings
from creditshop.services.conversation_state import ConversationState
from creditshop.services.stock import StockService

log = logging.getLogger(__name__)

_last_recount_at: datetime | None = None


async def scheduler_tick(session: AsyncSession, state: ConversationState | None = None) -> None:
    """Periodic housekeeping, called on every loop iteration.

    * drops expired conversation state (pending approvals, admin targets)
    * recomputes the cached products.stock counters every STOCK_RECOUNT_INTERVAL_MIN
    """
    global _last_recount_at

    if state is not None:
        dropped = state.sweep()
        if dropped:
            log.debug("[scheduler] swept %s expired conversation entries", dropped)

    now = datetime.now(timezone.utc)
    interval = timedelta(minutes=int(settings.STOCK_RECOUNT_INTERVAL_MIN))
    if _last_recount_at is not None and now - _last_recount_at < interval:
        return
    counts = await StockService(session).recount_all()
    _last_recount_at = now
    log.info("[scheduler] stock recounted for %s products", len(counts))
