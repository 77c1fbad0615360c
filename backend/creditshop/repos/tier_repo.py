from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core.config import settings
from creditshop.models.tier import CreditTier


class TierRepo:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active(self) -> list[CreditTier]:
        res = await self.session.execute(
            select(CreditTier).where(CreditTier.active.is_(True)).order_by(CreditTier.min_spend.asc())
        )
        return list(res.scalars().all())

    async def thresholds(self) -> list[tuple[Decimal, Decimal]]:
        """(min_spend, credit_limit_grant) pairs, ascending by min_spend.

        Falls back to settings.CREDIT_TIERS when no tier rows are active.
        """
        rows = await self.list_active()
        if rows:
            pairs = [(Decimal(r.min_spend), Decimal(r.credit_limit_grant)) for r in rows]
        else:
            pairs = [
                (Decimal(str(t["min_spend"])), Decimal(str(t["credit_limit"])))
                for t in settings.CREDIT_TIERS
            ]
        return sorted(pairs, key=lambda p: p[0])

    async def create(self, *, min_spend: Decimal, credit_limit_grant: Decimal, description: str | None = None) -> CreditTier:
        t = CreditTier(min_spend=min_spend, credit_limit_grant=credit_limit_grant, description=description)
        self.session.add(t)
        await self.session.flush()
        return t
