from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.api.deps import get_current_admin, get_db
from creditshop.core.security import hash_password
from creditshop.repos.admin_repo import AdminRepo
from creditshop.repos.audit_repo import AuditRepo
from creditshop.schemas.admin import AdminCreate, AdminOut

router = APIRouter()


@router.get("", response_model=list[AdminOut])
async def list_admins(db: AsyncSession = Depends(get_db), admin=Depends(get_current_admin)):
    return await AdminRepo(db).list_all()


@router.post("", response_model=AdminOut, status_code=201)
async def create_admin(payload: AdminCreate, db: AsyncSession = Depends(get_db), admin=Depends(get_current_admin)):
    repo = AdminRepo(db)
    if await repo.get_by_email(payload.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    created = await repo.create(email=payload.email, password_hash=hash_password(payload.password), name=payload.name)
    await AuditRepo(db).log("admin_create", admin.id, "admin", created.id, created.email)
    await db.commit()
    return created
