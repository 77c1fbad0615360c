from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.token import CreditToken


class TokenRepo:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_code(self, code: str) -> CreditToken | None:
        res = await self.session.execute(
            select(CreditToken).where(CreditToken.code == code).execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    async def create(self, **fields) -> CreditToken:
        t = CreditToken(**fields)
        self.session.add(t)
        await self.session.flush()
        return t

    async def mark_used(self, token_id: int, account_id: int, now: datetime) -> bool:
        """Unused and unexpired -> used. False when someone else got there first or it expired."""
        stmt = (
            update(CreditToken)
            .where(
                CreditToken.id == int(token_id),
                CreditToken.used_at.is_(None),
                CreditToken.expires_at > now,
            )
            .values(used_at=now, used_by_account_id=int(account_id))
            .returning(CreditToken.id)
            .execution_options(synchronize_session=False)
        )
        return (await self.session.execute(stmt)).first() is not None

    async def list(self, *, limit: int = 100, offset: int = 0) -> list[CreditToken]:
        res = await self.session.execute(
            select(CreditToken).order_by(CreditToken.id.desc()).limit(limit).offset(offset)
        )
        return list(res.scalars().all())
