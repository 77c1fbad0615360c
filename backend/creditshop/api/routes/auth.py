from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.api.deps import get_current_admin, get_db
from creditshop.core.security import create_access_token, verify_password
from creditshop.repos.admin_repo import AdminRepo
from creditshop.schemas.auth import LoginRequest, TokenResponse

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    admin = await AdminRepo(db).get_by_email(payload.email)
    if not admin or not admin.is_active or not verify_password(payload.password, admin.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return TokenResponse(access_token=create_access_token(admin.id, session_version=admin.session_version or 1))


@router.get("/me")
async def me(admin=Depends(get_current_admin)):
    return {"id": admin.id, "email": admin.email, "name": admin.name}
