from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.enums import StockStatus
from creditshop.models.stock import StockUnit


class StockRepo:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, unit_id: int) -> StockUnit | None:
        return await self.session.get(StockUnit, int(unit_id), populate_existing=True)

    async def list_for_product(self, product_id: int, *, status: str | None = None) -> list[StockUnit]:
        q = (
            select(StockUnit)
            .where(StockUnit.product_id == int(product_id))
            .order_by(StockUnit.id)
            .execution_options(populate_existing=True)
        )
        if status:
            q = q.where(StockUnit.status == status)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def add_many(self, product_id: int, payloads: list[dict]) -> list[StockUnit]:
        units = [StockUnit(product_id=int(product_id), payload=p, status=StockStatus.available.value) for p in payloads]
        self.session.add_all(units)
        await self.session.flush()
        return units

    async def reserve_next_available(self, product_id: int) -> int | None:
        """Flip the lowest-id available unit to reserved. Returns its id or None.

        On Postgres the candidate row is picked with SKIP LOCKED so concurrent
        buyers fan out over different units; the outer status predicate makes
        the flip a compare-and-set either way.
        """
        candidate = (
            select(StockUnit.id)
            .where(StockUnit.product_id == int(product_id), StockUnit.status == StockStatus.available.value)
            .order_by(StockUnit.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(StockUnit)
            .where(StockUnit.id == candidate, StockUnit.status == StockStatus.available.value)
            .values(status=StockStatus.reserved.value)
            .returning(StockUnit.id)
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).first()
        return int(row[0]) if row is not None else None

    async def has_available(self, product_id: int) -> bool:
        q = (
            select(StockUnit.id)
            .where(StockUnit.product_id == int(product_id), StockUnit.status == StockStatus.available.value)
            .limit(1)
        )
        return (await self.session.execute(q)).first() is not None

    async def transition(self, unit_id: int, *, from_status: str, to_status: str, **values) -> bool:
        """Compare-and-set on status. Returns False when the unit was not in `from_status`."""
        stmt = (
            update(StockUnit)
            .where(StockUnit.id == int(unit_id), StockUnit.status == from_status)
            .values(status=to_status, **values)
            .returning(StockUnit.id)
            .execution_options(synchronize_session=False)
        )
        return (await self.session.execute(stmt)).first() is not None

    async def mark_sold(self, unit_id: int, account_id: int) -> bool:
        return await self.transition(
            unit_id,
            from_status=StockStatus.reserved.value,
            to_status=StockStatus.sold.value,
            sold_to_account_id=int(account_id),
            sold_at=datetime.now(timezone.utc),
        )

    async def update_payload(self, unit_id: int, payload: dict) -> None:
        await self.session.execute(
            update(StockUnit)
            .where(StockUnit.id == int(unit_id))
            .values(payload=payload)
            .execution_options(synchronize_session=False)
        )

    async def delete_unsold(self, unit_id: int) -> bool:
        res = await self.session.execute(
            delete(StockUnit)
            .where(StockUnit.id == int(unit_id), StockUnit.status != StockStatus.sold.value)
            .returning(StockUnit.id)
            .execution_options(synchronize_session=False)
        )
        return res.first() is not None
