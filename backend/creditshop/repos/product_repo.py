from __future__ import annotations

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.enums import StockStatus
from creditshop.models.product import Product, ShortCode
from creditshop.models.stock import StockUnit


def normalize_code(code: str) -> str:
    return (code or "").strip().lower()


class ProductRepo:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, product_id: int) -> Product | None:
        return await self.session.get(Product, int(product_id), populate_existing=True)

    async def get_by_short_code(self, code: str) -> Product | None:
        q = select(Product).join(ShortCode, ShortCode.product_id == Product.id).where(ShortCode.code == normalize_code(code))
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list(self, *, active_only: bool = False) -> list[Product]:
        q = select(Product).order_by(Product.category.asc(), Product.name.asc(), Product.id.asc())
        if active_only:
            q = q.where(Product.active.is_(True))
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list_in_stock(self) -> list[Product]:
        q = (
            select(Product)
            .where(Product.active.is_(True), Product.stock > 0)
            .order_by(Product.category.asc(), Product.name.asc())
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def create(self, **fields) -> Product:
        p = Product(**fields)
        self.session.add(p)
        await self.session.flush()
        return p

    async def update(self, product: Product, **fields) -> Product:
        for k, v in fields.items():
            setattr(product, k, v)
        await self.session.flush()
        return product

    async def delete(self, product: Product) -> None:
        await self.session.delete(product)
        await self.session.flush()

    async def count_available(self, product_id: int) -> int:
        q = select(func.count(StockUnit.id)).where(
            StockUnit.product_id == int(product_id),
            StockUnit.status == StockStatus.available.value,
        )
        return int((await self.session.execute(q)).scalar_one() or 0)

    async def refresh_stock_count(self, product_id: int) -> int:
        """Recompute products.stock from stock_items in one statement."""
        available = (
            select(func.count(StockUnit.id))
            .where(StockUnit.product_id == Product.id, StockUnit.status == StockStatus.available.value)
            .correlate(Product)
            .scalar_subquery()
        )
        res = await self.session.execute(
            update(Product)
            .where(Product.id == int(product_id))
            .values(stock=available)
            .returning(Product.stock)
            .execution_options(synchronize_session=False)
        )
        row = res.first()
        return int(row[0]) if row is not None else 0

    async def list_ids(self) -> list[int]:
        res = await self.session.execute(select(Product.id).order_by(Product.id))
        return [int(x) for x in res.scalars().all()]

    # --- short codes ---

    async def list_short_codes(self, product_id: int) -> list[ShortCode]:
        res = await self.session.execute(
            select(ShortCode).where(ShortCode.product_id == int(product_id)).order_by(ShortCode.id)
        )
        return list(res.scalars().all())

    async def get_short_code(self, code: str) -> ShortCode | None:
        res = await self.session.execute(select(ShortCode).where(ShortCode.code == normalize_code(code)))
        return res.scalar_one_or_none()

    async def add_short_code(self, product_id: int, code: str) -> ShortCode:
        sc = ShortCode(product_id=int(product_id), code=normalize_code(code))
        self.session.add(sc)
        await self.session.flush()
        return sc

    async def delete_short_code(self, product_id: int, code_id: int) -> bool:
        res = await self.session.execute(
            delete(ShortCode)
            .where(ShortCode.id == int(code_id), ShortCode.product_id == int(product_id))
            .returning(ShortCode.id)
        )
        return res.first() is not None
