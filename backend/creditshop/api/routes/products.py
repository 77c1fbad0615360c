from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.api.deps import get_current_admin, get_db
from creditshop.api.routes.stock_items import stock_item_out
from creditshop.core.errors import ProductNotFound
from creditshop.repos.audit_repo import AuditRepo
from creditshop.repos.product_repo import ProductRepo
from creditshop.repos.stock_repo import StockRepo
from creditshop.schemas.product import ProductCreate, ProductOut, ProductUpdate, ShortCodeCreate, ShortCodeOut
from creditshop.schemas.stock import StockItemOut, StockItemsCreate
from creditshop.services.stock import StockService

router = APIRouter()

NULLABLE_FIELDS = {"description", "category", "message_template"}


async def _get_product(repo: ProductRepo, product_id: int):
    product = await repo.get(product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found")
    return product


@router.get("", response_model=list[ProductOut])
async def list_products(
    active_only: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    return await ProductRepo(db).list(active_only=active_only)


@router.post("", response_model=ProductOut, status_code=201)
async def create_product(payload: ProductCreate, db: AsyncSession = Depends(get_db), admin=Depends(get_current_admin)):
    repo = ProductRepo(db)
    product = await repo.create(**payload.model_dump())
    await AuditRepo(db).log("product_create", admin.id, "product", product.id, product.name)
    await db.commit()
    return await repo.get(product.id)


@router.put("/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    repo = ProductRepo(db)
    product = await _get_product(repo, product_id)
    changes = {
        k: v
        for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }
    await repo.update(product, **changes)
    await AuditRepo(db).log("product_update", admin.id, "product", product_id, ",".join(sorted(changes)))
    await db.commit()
    return await repo.get(product_id)


@router.delete("/{product_id}")
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db), admin=Depends(get_current_admin)):
    repo = ProductRepo(db)
    product = await _get_product(repo, product_id)
    await repo.delete(product)
    await AuditRepo(db).log("product_delete", admin.id, "product", product_id)
    await db.commit()
    return {"ok": True}


# --- short codes ---


@router.get("/{product_id}/short-codes", response_model=list[ShortCodeOut])
async def list_short_codes(product_id: int, db: AsyncSession = Depends(get_db), admin=Depends(get_current_admin)):
    repo = ProductRepo(db)
    await _get_product(repo, product_id)
    return await repo.list_short_codes(product_id)


@router.post("/{product_id}/short-codes", response_model=ShortCodeOut, status_code=201)
async def add_short_code(
    product_id: int,
    payload: ShortCodeCreate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    repo = ProductRepo(db)
    await _get_product(repo, product_id)
    if await repo.get_short_code(payload.code):
        raise HTTPException(status_code=409, detail="Short code already in use")
    sc = await repo.add_short_code(product_id, payload.code)
    await db.commit()
    return sc


@router.delete("/{product_id}/short-codes/{code_id}")
async def delete_short_code(
    product_id: int,
    code_id: int,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    if not await ProductRepo(db).delete_short_code(product_id, code_id):
        raise HTTPException(status_code=404, detail="Short code not found")
    await db.commit()
    return {"ok": True}


# --- stock ---


@router.get("/{product_id}/stock-items", response_model=list[StockItemOut])
async def list_stock_items(
    product_id: int,
    status: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    await _get_product(ProductRepo(db), product_id)
    service = StockService(db)
    units = await StockRepo(db).list_for_product(product_id, status=status)
    return [stock_item_out(service, u) for u in units]


@router.post("/{product_id}/stock-items", response_model=list[StockItemOut], status_code=201)
async def add_stock_items(
    product_id: int,
    payload: StockItemsCreate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(get_current_admin),
):
    service = StockService(db)
    units = await service.bulk_load(product_id, payload.items, duplicate_factor=payload.duplicate_factor)
    await AuditRepo(db).log("stock_load", admin.id, "product", product_id, f"{len(units)} units")
    await db.commit()
    return [stock_item_out(service, u) for u in units]
