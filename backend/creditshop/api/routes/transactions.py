from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.api.deps import get_current_admin, get_db
from creditshop.core.errors import ValidationError
from creditshop.models.enums import LedgerEntryType
from creditshop.repos.ledger_repo import LedgerRepo
from creditshop.schemas.user import LedgerEntryOut

router = APIRouter()


@router.get("/transactions", response_model=list[LedgerEntryOut])
async def list_transactions(
    type: str | None = Query(default=None),
    user_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    if type is not None and type not in LedgerEntryType.values():
        raise ValidationError(f"Unknown transaction type: {type}")
    return await LedgerRepo(db).list(limit=limit, offset=offset, type=type, account_id=user_id)


@router.get("/topups", response_model=list[LedgerEntryOut])
async def list_topups(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    return await LedgerRepo(db).list(limit=limit, offset=offset, type=LedgerEntryType.topup.value)
