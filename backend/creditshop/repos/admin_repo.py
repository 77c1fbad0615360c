from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.admin import Admin


class AdminRepo:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, admin_id: int) -> Admin | None:
        res = await self.session.execute(select(Admin).where(Admin.id == admin_id))
        return res.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Admin | None:
        res = await self.session.execute(select(Admin).where(Admin.email == email.strip().lower()))
        return res.scalar_one_or_none()

    async def create(self, *, email: str, password_hash: str, name: str) -> Admin:
        admin = Admin(email=email.strip().lower(), password_hash=password_hash, name=name)
        self.session.add(admin)
        await self.session.flush()
        return admin

    async def list_all(self) -> list[Admin]:
        res = await self.session.execute(select(Admin).order_by(Admin.id))
        return list(res.scalars().all())

    async def count(self) -> int:
        res = await self.session.execute(select(func.count(Admin.id)))
        return int(res.scalar_one() or 0)

    async def set_password(self, admin: Admin, password_hash: str) -> None:
        admin.password_hash = password_hash
        # Changing the password logs out every existing session.
        admin.session_version = int(admin.session_version or 1) + 1
        await self.session.flush()
