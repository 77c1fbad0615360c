"""Purchase Orchestrator.

    Requested -> PriceResolved -> StockClaimed -> LedgerApplied -> Completed
    StockClaimed -> Failed (unit released) when the debit is refused

Every purchase is one database transaction: claim, debit, sale confirmation,
spend tracking and the queued disclosure push all commit together. A failed
debit releases the reserved unit before the error propagates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core.errors import AccountNotFound, InsufficientCredit, ProductNotFound, StorageError
from creditshop.core.money import to_money
from creditshop.models.enums import LedgerEntryType
from creditshop.models.product import Product
from creditshop.repos.job_repo import JobRepo
from creditshop.repos.product_repo import ProductRepo
from creditshop.services.credit import CreditService, SpendResult
from creditshop.services.stock import StockService

log = logging.getLogger(__name__)

DEFAULT_DISCLOSURE = "🎉 คุณได้รับสินค้าแล้ว!\n\n(กรุณาตั้งค่า message template ในฐานข้อมูล)"

_PLACEHOLDER = re.compile(r"\{([A-Za-z0-9_]+)\}")


def render_payload(payload: dict[str, str], template: str | None) -> str:
    """Fill {user}/{pass}/{screen}/{pin} (or any payload key) into the template.

    Unknown placeholders render as empty strings.
    """
    if not template:
        return DEFAULT_DISCLOSURE
    return _PLACEHOLDER.sub(lambda m: str(payload.get(m.group(1)) or ""), template)


@dataclass(frozen=True)
class PurchaseOutcome:
    account_id: int
    product_id: int
    product_name: str
    stock_item_id: int
    price: Decimal
    balance_before: Decimal
    balance_after: Decimal
    ledger_entry_id: int
    disclosure: str
    spend: SpendResult
    forced: bool = False


class PurchaseService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.credit = CreditService(session)
        self.stock = StockService(session)
        self.products = ProductRepo(session)

    async def resolve_product(self, identifier: str) -> Product:
        """Numeric id first, then short code. Inactive products are not for sale."""
        ident = (identifier or "").strip()
        if not ident:
            raise ProductNotFound("No product given")
        product = None
        if ident.isdigit():
            product = await self.products.get(int(ident))
        if product is None:
            product = await self.products.get_by_short_code(ident)
        if product is None or not product.active:
            raise ProductNotFound(f"Product {ident} not found")
        return product

    async def buy(self, account_id: int, identifier: str) -> PurchaseOutcome:
        return await self._run(account_id, identifier, forced=False, description_suffix="")

    async def gift(self, account_id: int, identifier: str, *, admin_label: str | None = None) -> PurchaseOutcome:
        """Admin-forced purchase on a user's behalf. Skips the credit floor, still needs stock."""
        suffix = f" (แอดมินส่งให้{': ' + admin_label if admin_label else ''})"
        return await self._run(account_id, identifier, forced=True, description_suffix=suffix)

    async def _run(self, account_id: int, identifier: str, *, forced: bool, description_suffix: str) -> PurchaseOutcome:
        unit = None
        try:
            account = await self.credit.get(account_id)
            product = await self.resolve_product(identifier)
            price = to_money(product.price)

            unit = await self.stock.claim_one(product.id)

            try:
                entry = await self.credit.apply_delta(
                    account_id,
                    -price,
                    LedgerEntryType.purchase,
                    description=f"ซื้อ: {product.name}{description_suffix}",
                    product_id=product.id,
                    stock_item_id=unit.id,
                    meta={"forced": True} if forced else None,
                    enforce_floor=not forced,
                )
            except InsufficientCredit:
                await self.stock.release(unit.id)
                await self._commit(account_id, product.id, unit.id)
                log.info("[purchase] insufficient credit account=%s product=%s, unit %s released", account_id, product.id, unit.id)
                raise

            sold = await self.stock.confirm_sale(unit, account_id)
            spend = await self.credit.record_spend(account_id, price)
            disclosure = render_payload(self.stock.payload_of(sold), product.message_template)
            await JobRepo(self.session).enqueue_push(account.line_user_id, [disclosure])

            await self._commit(account_id, product.id, unit.id)
        except (AccountNotFound, ProductNotFound, InsufficientCredit):
            raise
        except SQLAlchemyError as e:
            await self._rollback(account_id, identifier, unit)
            raise StorageError(f"Purchase failed: {type(e).__name__}") from e
        except Exception:
            await self._rollback(account_id, identifier, unit)
            raise

        log.info(
            "[purchase] account=%s product=%s unit=%s price=%s balance %s -> %s%s",
            account_id,
            product.id,
            unit.id,
            price,
            entry.balance_before,
            entry.balance_after,
            " (forced)" if forced else "",
        )
        return PurchaseOutcome(
            account_id=account_id,
            product_id=product.id,
            product_name=product.name,
            stock_item_id=unit.id,
            price=price,
            balance_before=to_money(entry.balance_before),
            balance_after=to_money(entry.balance_after),
            ledger_entry_id=entry.id,
            disclosure=disclosure,
            spend=spend,
            forced=forced,
        )

    async def _commit(self, account_id: int, product_id: int, unit_id: int) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError:
            log.critical(
                "[purchase] commit failed, manual reconciliation needed account=%s product=%s unit=%s",
                account_id,
                product_id,
                unit_id,
            )
            raise

    async def _rollback(self, account_id: int, identifier: str, unit) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError:
            log.critical(
                "[purchase] rollback failed, manual reconciliation needed account=%s product=%s unit=%s",
                account_id,
                identifier,
                getattr(unit, "id", None),
            )
            raise
