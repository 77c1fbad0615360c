from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.api.deps import get_current_admin, get_db
from creditshop.models.enums import SlipStatus
from creditshop.repos.audit_repo import AuditRepo
from creditshop.repos.slip_repo import SlipRepo
from creditshop.schemas.slip import SlipApproveRequest, SlipDecisionOut, SlipOut, SlipRejectRequest
from creditshop.services.slips import SlipService

log = logging.getLogger(__name__)

router = APIRouter()


async def _audit_decision(db: AsyncSession, action: str, admin_id: int, slip_id: int, details: str | None) -> None:
    # The decision is already committed; a lost audit row must not turn it into a 500.
    try:
        await AuditRepo(db).log(action, admin_id, "slip", slip_id, details)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("[slips] audit row not written action=%s slip=%s admin=%s", action, slip_id, admin_id)


@router.get("/pending", response_model=list[SlipOut])
async def pending_slips(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    return await SlipRepo(db).list(status=SlipStatus.pending.value, limit=limit, offset=offset)


@router.post("/{slip_id}/approve", response_model=SlipDecisionOut)
async def approve_slip(
    slip_id: int,
    payload: SlipApproveRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    outcome = await SlipService(db).approve(slip_id, amount=payload.amount if payload else None, admin_id=admin.id)
    await _audit_decision(db, "slip_approve", admin.id, slip_id, str(outcome.amount))
    return SlipDecisionOut(
        slip_id=outcome.slip_id,
        status=outcome.status,
        amount=outcome.amount,
        credited=outcome.credited,
        balance_after=outcome.balance_after,
    )


@router.post("/{slip_id}/reject", response_model=SlipDecisionOut)
async def reject_slip(
    slip_id: int,
    payload: SlipRejectRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    reason = payload.reason if payload else None
    outcome = await SlipService(db).reject(slip_id, reason=reason, admin_id=admin.id)
    await _audit_decision(db, "slip_reject", admin.id, slip_id, reason)
    return SlipDecisionOut(slip_id=outcome.slip_id, status=outcome.status, amount=outcome.amount, credited=False)
