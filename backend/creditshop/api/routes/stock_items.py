from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.api.deps import get_current_admin, get_db
from creditshop.models.stock import StockUnit
from creditshop.repos.audit_repo import AuditRepo
from creditshop.schemas.stock import StockItemOut, StockItemUpdate
from creditshop.services.stock import StockService

router = APIRouter()


def stock_item_out(service: StockService, unit: StockUnit) -> StockItemOut:
    return StockItemOut(
        id=unit.id,
        product_id=unit.product_id,
        payload=service.payload_of(unit),
        status=unit.status,
        sold_to_account_id=unit.sold_to_account_id,
        sold_at=unit.sold_at,
        created_at=unit.created_at,
    )


@router.put("/{item_id}", response_model=StockItemOut)
async def update_stock_item(
    item_id: int,
    payload: StockItemUpdate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    service = StockService(db)
    unit = await service.update_unit(item_id, payload=payload.payload, status=payload.status)
    await AuditRepo(db).log("stock_update", admin.id, "stock_item", item_id)
    await db.commit()
    return stock_item_out(service, unit)


@router.delete("/{item_id}")
async def delete_stock_item(item_id: int, db: AsyncSession = Depends(get_db), admin=Depends(get_current_admin)):
    service = StockService(db)
    await service.remove_unit(item_id)
    await AuditRepo(db).log("stock_delete", admin.id, "stock_item", item_id)
    await db.commit()
    return {"ok": True}
