from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.enums import SlipStatus
from creditshop.models.slip import SlipRecord


class SlipRepo:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, slip_id: int) -> SlipRecord | None:
        return await self.session.get(SlipRecord, int(slip_id), populate_existing=True)

    async def get_by_trans_ref(self, trans_ref: str) -> SlipRecord | None:
        res = await self.session.execute(select(SlipRecord).where(SlipRecord.trans_ref == trans_ref))
        return res.scalar_one_or_none()

    async def create(self, **fields) -> SlipRecord:
        slip = SlipRecord(**fields)
        self.session.add(slip)
        await self.session.flush()
        return slip

    async def list(self, *, status: str | None = None, limit: int = 100, offset: int = 0) -> list[SlipRecord]:
        q = select(SlipRecord).order_by(SlipRecord.created_at.desc(), SlipRecord.id.desc()).limit(limit).offset(offset)
        if status:
            q = q.where(SlipRecord.status == status)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def decide(self, slip_id: int, *, to_status: str, admin_id: int | None, **values) -> bool:
        """pending -> approved/rejected. Only one decision can ever win."""
        stmt = (
            update(SlipRecord)
            .where(SlipRecord.id == int(slip_id), SlipRecord.status == SlipStatus.pending.value)
            .values(
                status=to_status,
                decided_by_admin_id=admin_id,
                decided_at=datetime.now(timezone.utc),
                **values,
            )
            .returning(SlipRecord.id)
            .execution_options(synchronize_session=False)
        )
        return (await self.session.execute(stmt)).first() is not None
