from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.models.account import Account


class AccountRepo:
    """Account rows. Every balance/limit/spend change is one conditional UPDATE.

    The WHERE clause is re-checked by the database against the latest row
    version, so two concurrent debits cannot both pass the floor check.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, account_id: int) -> Account | None:
        return await self.session.get(Account, int(account_id), populate_existing=True)

    async def get_by_line_user_id(self, line_user_id: str) -> Account | None:
        res = await self.session.execute(select(Account).where(Account.line_user_id == line_user_id))
        return res.scalar_one_or_none()

    async def get_or_create(self, line_user_id: str, display_name: str = "") -> Account:
        """Idempotent create keyed by LINE user id.

        Must run before other writes in the transaction: a lost insert race
        rolls the session back before re-reading the winner's row.
        """
        existing = await self.get_by_line_user_id(line_user_id)
        if existing:
            return existing
        acc = Account(
            line_user_id=line_user_id,
            display_name=(display_name or "")[:255],
            balance=Decimal("0"),
            credit_limit=Decimal("0"),
            lifetime_spend=Decimal("0"),
        )
        self.session.add(acc)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            winner = await self.get_by_line_user_id(line_user_id)
            if winner is None:
                raise
            return winner
        return acc

    async def list(self, *, limit: int = 100, offset: int = 0, q: str | None = None) -> list[Account]:
        stmt = select(Account).order_by(Account.id.desc()).limit(limit).offset(offset)
        if q:
            like = f"%{q}%"
            stmt = stmt.where(or_(Account.display_name.ilike(like), Account.line_user_id.ilike(like)))
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def count(self) -> int:
        res = await self.session.execute(select(func.count(Account.id)))
        return int(res.scalar_one() or 0)

    async def list_line_admins(self) -> list[Account]:
        res = await self.session.execute(select(Account).where(Account.is_admin.is_(True)).order_by(Account.id))
        return list(res.scalars().all())

    async def add_to_balance(self, account_id: int, amount: Decimal, *, enforce_floor: bool) -> Decimal | None:
        """Add `amount` to the balance. Returns the new balance, or None when the
        floor check rejected the change (or the account does not exist)."""
        stmt = update(Account).where(Account.id == int(account_id))
        if enforce_floor:
            stmt = stmt.where(Account.balance + amount >= -Account.credit_limit)
        stmt = (
            stmt.values(balance=Account.balance + amount, updated_at=datetime.now(timezone.utc))
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        row = res.first()
        return Decimal(row[0]) if row is not None else None

    async def add_to_credit_limit(self, account_id: int, delta: Decimal) -> Decimal | None:
        stmt = (
            update(Account)
            .where(Account.id == int(account_id), Account.credit_limit + delta >= 0)
            .values(credit_limit=Account.credit_limit + delta, updated_at=datetime.now(timezone.utc))
            .returning(Account.credit_limit)
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).first()
        return Decimal(row[0]) if row is not None else None

    async def raise_credit_limit_to(self, account_id: int, grant: Decimal) -> bool:
        """Set credit_limit to `grant` only if it is currently lower."""
        stmt = (
            update(Account)
            .where(Account.id == int(account_id), Account.credit_limit < grant)
            .values(credit_limit=grant, updated_at=datetime.now(timezone.utc))
            .returning(Account.id)
            .execution_options(synchronize_session=False)
        )
        return (await self.session.execute(stmt)).first() is not None

    async def set_credit_limit(self, account_id: int, value: Decimal) -> None:
        await self.session.execute(
            update(Account)
            .where(Account.id == int(account_id))
            .values(credit_limit=value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )

    async def add_to_lifetime_spend(self, account_id: int, amount: Decimal) -> Decimal | None:
        stmt = (
            update(Account)
            .where(Account.id == int(account_id))
            .values(lifetime_spend=Account.lifetime_spend + amount, updated_at=datetime.now(timezone.utc))
            .returning(Account.lifetime_spend)
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).first()
        return Decimal(row[0]) if row is not None else None

    async def set_line_admin(self, account_id: int, is_admin: bool) -> None:
        await self.session.execute(
            update(Account)
            .where(Account.id == int(account_id))
            .values(is_admin=bool(is_admin), updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
