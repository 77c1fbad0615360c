"""Stock Allocation Service.

Claiming is two-phase: a unit is flipped available -> reserved by an atomic
compare-and-set, then reserved -> sold once payment has gone through. A
reserved unit can be released back to available; a sold unit never changes
again.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core.crypto import open_payload, seal_payload
from creditshop.core.errors import AlreadyProcessed, ProductNotFound, StockExhausted, StockUnitNotFound, ValidationError
from creditshop.models.enums import StockStatus
from creditshop.models.stock import StockUnit
from creditshop.repos.product_repo import ProductRepo
from creditshop.repos.stock_repo import StockRepo

log = logging.getLogger(__name__)

# A competing claim can win the candidate row between the subselect and the
# update on backends without SKIP LOCKED; retry a few times before giving up.
CLAIM_ATTEMPTS = 5


def clean_payload(record: dict) -> dict[str, str]:
    if not isinstance(record, dict) or not record:
        raise ValidationError("Stock payload must be a non-empty object")
    return {str(k).strip(): "" if v is None else str(v) for k, v in record.items() if str(k).strip()}


class StockService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.units = StockRepo(session)
        self.products = ProductRepo(session)

    def payload_of(self, unit: StockUnit) -> dict[str, str]:
        return open_payload(unit.payload)

    async def claim_one(self, product_id: int) -> StockUnit:
        """Reserve one available unit. Raises StockExhausted when none is left."""
        for _ in range(CLAIM_ATTEMPTS):
            unit_id = await self.units.reserve_next_available(product_id)
            if unit_id is not None:
                await self.products.refresh_stock_count(product_id)
                unit = await self.units.get(unit_id)
                log.info("[stock] reserved unit=%s product=%s", unit_id, product_id)
                return unit
            if not await self.units.has_available(product_id):
                break
        raise StockExhausted(f"Product {product_id} is out of stock")

    async def confirm_sale(self, unit: StockUnit, account_id: int) -> StockUnit:
        if not await self.units.mark_sold(unit.id, account_id):
            raise AlreadyProcessed(f"Stock unit {unit.id} is not reserved")
        log.info("[stock] sold unit=%s to account=%s", unit.id, account_id)
        return await self.units.get(unit.id)

    async def release(self, unit_id: int) -> None:
        """Return a reserved unit to available (compensation after a failed payment)."""
        ok = await self.units.transition(
            unit_id,
            from_status=StockStatus.reserved.value,
            to_status=StockStatus.available.value,
        )
        if not ok:
            raise AlreadyProcessed(f"Stock unit {unit_id} is not reserved")
        unit = await self.units.get(unit_id)
        await self.products.refresh_stock_count(unit.product_id)
        log.info("[stock] released unit=%s product=%s", unit_id, unit.product_id)

    async def recount(self, product_id: int) -> int:
        return await self.products.refresh_stock_count(product_id)

    async def recount_all(self) -> dict[int, int]:
        counts: dict[int, int] = {}
        for pid in await self.products.list_ids():
            counts[pid] = await self.products.refresh_stock_count(pid)
        return counts

    async def bulk_load(self, product_id: int, records: list[dict], duplicate_factor: int | None = None) -> list[StockUnit]:
        """Insert units for `records`, each repeated `duplicate_factor` times.

        The factor defaults to the product's retail_multiplier (one account
        credential sold to several buyers).
        """
        product = await self.products.get(product_id)
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found")
        factor = int(duplicate_factor if duplicate_factor is not None else product.retail_multiplier or 1)
        if factor < 1:
            raise ValidationError("Duplicate factor must be at least 1")
        if not records:
            raise ValidationError("No stock records given")

        sealed = [seal_payload(clean_payload(r)) for r in records for _ in range(factor)]
        units = await self.units.add_many(product_id, sealed)
        count = await self.products.refresh_stock_count(product_id)
        log.info("[stock] loaded %s units (factor=%s) product=%s stock=%s", len(units), factor, product_id, count)
        return units

    async def update_unit(self, unit_id: int, *, payload: dict | None = None, status: str | None = None) -> StockUnit:
        unit = await self.units.get(unit_id)
        if unit is None:
            raise StockUnitNotFound(f"Stock unit {unit_id} not found")
        if unit.status == StockStatus.sold.value:
            raise AlreadyProcessed("Sold stock units cannot be changed")

        if payload is not None:
            await self.units.update_payload(unit_id, seal_payload(clean_payload(payload)))
        if status is not None and status != unit.status:
            if status not in StockStatus.values():
                raise ValidationError(f"Unknown stock status: {status}")
            if status == StockStatus.sold.value:
                raise ValidationError("Units are sold through a purchase only")
            if not await self.units.transition(unit_id, from_status=unit.status, to_status=status):
                raise AlreadyProcessed(f"Stock unit {unit_id} changed concurrently")
        await self.products.refresh_stock_count(unit.product_id)
        return await self.units.get(unit_id)

    async def remove_unit(self, unit_id: int) -> None:
        unit = await self.units.get(unit_id)
        if unit is None:
            raise StockUnitNotFound(f"Stock unit {unit_id} not found")
        if not await self.units.delete_unsold(unit_id):
            raise AlreadyProcessed("Sold stock units cannot be removed")
        await self.products.refresh_stock_count(unit.product_id)
