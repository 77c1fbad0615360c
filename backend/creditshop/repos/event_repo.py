from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.processed_event import ProcessedEvent


class ProcessedEventRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def claim(self, event_id: str | None) -> bool:
        """Record a webhook event id. False means it was already handled.

        Commits before the handler runs, so events are handled at most once: a
        redelivery after a crash mid-handler is dropped and that chat reply is
        lost. Running it again could repeat a /buy, which has no key of its own;
        slips, tokens and approvals are guarded by their own unique keys.
        """
        if not event_id:
            return True
        if await self.db.get(ProcessedEvent, event_id) is not None:
            return False
        self.db.add(ProcessedEvent(event_id=event_id))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True
