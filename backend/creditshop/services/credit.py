"""Credit Account Service.

Balances move only through `apply_delta`, which performs the floor check and
the balance write as one conditional UPDATE and appends the matching ledger
entry in the same transaction. Nothing here commits; the caller owns the unit
of work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core.errors import AccountNotFound, InsufficientCredit, ValidationError
from creditshop.core.money import ZERO, to_money
from creditshop.models.account import Account
from creditshop.models.enums import LedgerEntryType
from creditshop.models.ledger import LedgerEntry
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.ledger_repo import LedgerRepo
from creditshop.repos.tier_repo import TierRepo

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpendResult:
    lifetime_spend: Decimal
    credit_limit: Decimal
    credit_limit_raised: bool


class CreditService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.accounts = AccountRepo(session)
        self.ledger = LedgerRepo(session)

    async def get_or_create(self, line_user_id: str, display_name: str = "") -> Account:
        return await self.accounts.get_or_create(line_user_id, display_name)

    async def get(self, account_id: int) -> Account:
        acc = await self.accounts.get(account_id)
        if acc is None:
            raise AccountNotFound(f"Account {account_id} not found")
        return acc

    async def apply_delta(
        self,
        account_id: int,
        amount,
        entry_type: LedgerEntryType,
        *,
        description: str | None = None,
        product_id: int | None = None,
        stock_item_id: int | None = None,
        slip_id: int | None = None,
        meta: dict | None = None,
        enforce_floor: bool = True,
    ) -> LedgerEntry:
        """Apply a signed amount to the balance and record it.

        Debits (amount < 0) with `enforce_floor` fail with InsufficientCredit
        when the result would drop below -credit_limit; nothing is written then.
        """
        amount = to_money(amount)
        if entry_type == LedgerEntryType.purchase and amount > ZERO:
            raise ValidationError("Purchase entries must be debits")
        if entry_type in (LedgerEntryType.topup, LedgerEntryType.refund) and amount <= ZERO:
            raise ValidationError(f"{entry_type.value} entries must be positive")

        check_floor = enforce_floor and amount < ZERO
        new_balance = await self.accounts.add_to_balance(account_id, amount, enforce_floor=check_floor)
        if new_balance is None:
            acc = await self.accounts.get(account_id)
            if acc is None:
                raise AccountNotFound(f"Account {account_id} not found")
            raise InsufficientCredit(
                required=-amount,
                balance=to_money(acc.balance),
                credit_limit=to_money(acc.credit_limit),
            )

        new_balance = to_money(new_balance)
        entry = await self.ledger.append(
            account_id=account_id,
            type=entry_type.value,
            amount=amount,
            balance_before=new_balance - amount,
            balance_after=new_balance,
            product_id=product_id,
            stock_item_id=stock_item_id,
            slip_id=slip_id,
            description=description,
            meta=meta,
        )
        log.info(
            "[credit] account=%s %s %s -> balance=%s entry=%s",
            account_id,
            entry_type.value,
            amount,
            new_balance,
            entry.id,
        )
        return entry

    async def _limit_entry(self, account_id: int, before: Decimal, after: Decimal, reason: str) -> LedgerEntry:
        # Limit changes leave the balance alone but still show up in history.
        acc = await self.get(account_id)
        balance = to_money(acc.balance)
        return await self.ledger.append(
            account_id=account_id,
            type=LedgerEntryType.adjustment.value,
            amount=ZERO,
            balance_before=balance,
            balance_after=balance,
            description=reason,
            meta={"credit_limit_before": str(before), "credit_limit_after": str(after)},
        )

    async def raise_credit_limit(self, account_id: int, delta, *, reason: str = "credit limit raised") -> LedgerEntry:
        delta = to_money(delta)
        if delta <= ZERO:
            raise ValidationError("Credit limit increase must be positive")
        after = await self.accounts.add_to_credit_limit(account_id, delta)
        if after is None:
            raise AccountNotFound(f"Account {account_id} not found")
        after = to_money(after)
        log.info("[credit] account=%s credit_limit +%s -> %s", account_id, delta, after)
        return await self._limit_entry(account_id, after - delta, after, reason)

    async def set_credit_limit(self, account_id: int, value, *, reason: str = "credit limit set") -> LedgerEntry:
        value = to_money(value)
        if value < ZERO:
            raise ValidationError("Credit limit cannot be negative")
        acc = await self.get(account_id)
        before = to_money(acc.credit_limit)
        await self.accounts.set_credit_limit(account_id, value)
        log.info("[credit] account=%s credit_limit %s -> %s", account_id, before, value)
        return await self._limit_entry(account_id, before, value, reason)

    async def record_spend(self, account_id: int, amount) -> SpendResult:
        """Add to lifetime spend and apply the highest tier reached.

        Tiers only ever raise the limit; a tier grant below the current limit is ignored.
        """
        amount = to_money(amount)
        if amount < ZERO:
            raise ValidationError("Spend cannot be negative")
        spend = await self.accounts.add_to_lifetime_spend(account_id, amount)
        if spend is None:
            raise AccountNotFound(f"Account {account_id} not found")
        spend = to_money(spend)

        grant: Decimal | None = None
        for min_spend, limit in await TierRepo(self.session).thresholds():
            if spend >= min_spend:
                grant = limit

        raised = False
        before = to_money((await self.get(account_id)).credit_limit)
        if grant is not None and await self.accounts.raise_credit_limit_to(account_id, grant):
            raised = True
            log.info("[credit] account=%s tier reached spend=%s credit_limit %s -> %s", account_id, spend, before, grant)
            await self._limit_entry(account_id, before, to_money(grant), f"tier reached at spend {spend}")

        acc = await self.get(account_id)
        return SpendResult(lifetime_spend=spend, credit_limit=to_money(acc.credit_limit), credit_limit_raised=raised)

    @staticmethod
    def available_credit(account: Account) -> Decimal:
        return to_money(account.balance) + to_money(account.credit_limit)
