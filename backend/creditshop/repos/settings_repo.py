from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.app_setting import AppSetting

ADMIN_GROUP_ID = "admin_group_id"


class SettingsRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> str | None:
        row = await self.db.get(AppSetting, key, populate_existing=True)
        return row.value if row else None

    async def set(self, key: str, value: str | None) -> AppSetting:
        row = await self.db.get(AppSetting, key)
        if row is None:
            row = AppSetting(key=key, value=value)
            self.db.add(row)
        else:
            row.value = value
        await self.db.flush()
        return row

    async def get_admin_group_id(self) -> str | None:
        return await self.get(ADMIN_GROUP_ID)

    async def set_admin_group_id(self, group_id: str) -> None:
        await self.set(ADMIN_GROUP_ID, group_id)
