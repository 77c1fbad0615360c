from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.ledger import LedgerEntry


class LedgerRepo:
    """Append-only. There is no update or delete on purpose."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        *,
        account_id: int,
        type: str,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
        product_id: int | None = None,
        stock_item_id: int | None = None,
        slip_id: int | None = None,
        description: str | None = None,
        meta: dict | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            account_id=int(account_id),
            type=type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            product_id=product_id,
            stock_item_id=stock_item_id,
            slip_id=slip_id,
            description=description,
            meta=meta or {},
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_for_account(self, account_id: int, *, limit: int = 10, offset: int = 0) -> list[LedgerEntry]:
        q = (
            select(LedgerEntry)
            .where(LedgerEntry.account_id == int(account_id))
            .order_by(LedgerEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def all_for_account(self, account_id: int) -> list[LedgerEntry]:
        """Full history in application order."""
        q = select(LedgerEntry).where(LedgerEntry.account_id == int(account_id)).order_by(LedgerEntry.id.asc())
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        type: str | None = None,
        account_id: int | None = None,
    ) -> list[LedgerEntry]:
        q = select(LedgerEntry).order_by(LedgerEntry.id.desc()).limit(limit).offset(offset)
        if type:
            q = q.where(LedgerEntry.type == type)
        if account_id is not None:
            q = q.where(LedgerEntry.account_id == int(account_id))
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def sum_amounts(self, account_id: int) -> Decimal:
        res = await self.session.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(LedgerEntry.account_id == int(account_id))
        )
        return Decimal(str(res.scalar_one() or 0))
