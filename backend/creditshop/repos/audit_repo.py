from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.audit import AuditLog


class AuditRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        admin_id: int | None,
        entity: str | None = None,
        entity_id: str | int | None = None,
        details: str | None = None,
    ) -> AuditLog:
        row = AuditLog(
            admin_id=admin_id,
            action=action[:64],
            entity=entity[:64] if entity else None,
            entity_id=str(entity_id)[:64] if entity_id is not None else None,
            details=details,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def list(self, *, action: str | None = None, limit: int = 100) -> list[AuditLog]:
        q = select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
        if action:
            q = q.where(AuditLog.action == action)
        res = await self.db.execute(q)
        return list(res.scalars().all())
