from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.api.deps import get_current_admin, get_db
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.audit_repo import AuditRepo
from creditshop.repos.ledger_repo import LedgerRepo
from creditshop.schemas.user import CreditLimitUpdate, LedgerEntryOut, UserOut
from creditshop.services.credit import CreditService

router = APIRouter()


@router.get("", response_model=list[UserOut])
async def list_users(
    q: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    return await AccountRepo(db).list(limit=limit, offset=offset, q=q)


@router.patch("/{user_id}/credit-limit", response_model=UserOut)
async def set_credit_limit(
    user_id: int,
    payload: CreditLimitUpdate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    credit = CreditService(db)
    await credit.set_credit_limit(user_id, payload.credit_limit, reason=payload.reason or f"set by admin {admin.email}")
    await AuditRepo(db).log("credit_limit_set", admin.id, "user", user_id, str(payload.credit_limit))
    await db.commit()
    return await credit.get(user_id)


@router.get("/{user_id}/ledger", response_model=list[LedgerEntryOut])
async def user_ledger(
    user_id: int,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    await CreditService(db).get(user_id)
    return await LedgerRepo(db).list_for_account(user_id, limit=limit, offset=offset)
