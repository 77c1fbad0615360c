"""Slip Top-Up Reconciliation.

A bank transfer reference can turn into credit at most once: the slip row is
unique on trans_ref, and a pending slip is decided by a compare-and-set on its
status so only one approval (or rejection) can ever win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core import json
from creditshop.core.config import settings
from creditshop.core.errors import AlreadyProcessed, CreditShopError, SlipNotFound, StorageError, ValidationError
from creditshop.core.money import ZERO, format_currency, to_money
from creditshop.models.enums import LedgerEntryType, SlipStatus
from creditshop.models.slip import SlipRecord
from creditshop.repos.slip_repo import SlipRepo
from creditshop.services import notify
from creditshop.services.credit import CreditService
from creditshop.services.slip_verifier import SlipVerdict

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlipOutcome:
    slip_id: int
    status: str
    amount: Decimal
    credited: bool
    balance_after: Decimal | None = None
    review_reason: str | None = None


class SlipService:
    def __init__(self, session: AsyncSession, *, credit_mode: bool | None = None, max_age_min: int | None = None):
        self.session = session
        self.slips = SlipRepo(session)
        self.credit = CreditService(session)
        self.credit_mode = settings.CREDIT_MODE if credit_mode is None else bool(credit_mode)
        self.max_age = timedelta(minutes=max_age_min if max_age_min is not None else settings.SLIP_MAX_AGE_MIN)

    def is_stale(self, transferred_at: datetime | None, now: datetime | None = None) -> bool:
        if transferred_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - transferred_at > self.max_age

    async def submit(
        self,
        account_id: int,
        verdict: SlipVerdict,
        *,
        qr_payload: str | None = None,
        image_url: str | None = None,
    ) -> SlipOutcome:
        """Record a verified slip. Fresh valid slips credit immediately; the rest queue for review."""
        account = await self.credit.get(account_id)

        if verdict.trans_ref and await self.slips.get_by_trans_ref(verdict.trans_ref):
            raise AlreadyProcessed("Slip already used")

        review_reason = None
        if not verdict.ok:
            review_reason = f"verification failed: {verdict.reason}"
        elif self.is_stale(verdict.transferred_at):
            review_reason = f"slip older than {int(self.max_age.total_seconds() // 60)} minutes"

        approved_now = review_reason is None
        fields = dict(
            account_id=account.id,
            slip_payload=qr_payload,
            trans_ref=verdict.trans_ref,
            amount=to_money(verdict.amount) if verdict.amount is not None else ZERO,
            sender_name=verdict.sender_name,
            receiver_name=verdict.receiver_name,
            sending_bank=verdict.sending_bank,
            receiving_bank=verdict.receiving_bank,
            transferred_at=verdict.transferred_at,
            image_url=image_url,
            verification_response=json.dumps(verdict.raw) if verdict.raw else None,
            review_reason=review_reason,
            status=SlipStatus.approved.value if approved_now else SlipStatus.pending.value,
        )
        if approved_now:
            fields["decided_at"] = datetime.now(timezone.utc)

        try:
            slip = await self.slips.create(**fields)
            balance_after = None
            credited = False
            if approved_now and self.credit_mode:
                entry = await self.credit.apply_delta(
                    account.id,
                    slip.amount,
                    LedgerEntryType.topup,
                    description=f"เติมเงินผ่านสลิป {slip.trans_ref}",
                    slip_id=slip.id,
                )
                balance_after = to_money(entry.balance_after)
                credited = True
            if not approved_now:
                await notify.notify_admins(self.session, notify.slip_review_messages(slip, account))
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race on the same trans_ref.
            await self.session.rollback()
            raise AlreadyProcessed("Slip already used") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(f"Slip submission failed: {type(e).__name__}") from e
        except CreditShopError:
            await self.session.rollback()
            raise

        log.info(
            "[slips] slip=%s account=%s trans_ref=%s amount=%s status=%s credited=%s",
            slip.id,
            account.id,
            slip.trans_ref,
            slip.amount,
            slip.status,
            credited,
        )
        return SlipOutcome(
            slip_id=slip.id,
            status=slip.status,
            amount=to_money(slip.amount),
            credited=credited,
            balance_after=balance_after,
            review_reason=review_reason,
        )

    async def request_review(
        self,
        account_id: int,
        *,
        reason: str,
        qr_payload: str | None = None,
        image_url: str | None = None,
        amount: Decimal | None = None,
    ) -> SlipOutcome:
        """Queue a slip for a human when automatic verification could not decide."""
        account = await self.credit.get(account_id)
        try:
            slip = await self.slips.create(
                account_id=account.id,
                slip_payload=qr_payload,
                trans_ref=None,
                amount=to_money(amount) if amount is not None else ZERO,
                image_url=image_url,
                review_reason=reason[:255],
                status=SlipStatus.pending.value,
            )
            await notify.notify_admins(self.session, notify.slip_review_messages(slip, account))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(f"Slip review request failed: {type(e).__name__}") from e
        log.info("[slips] manual review requested slip=%s account=%s reason=%s", slip.id, account.id, reason)
        return SlipOutcome(slip_id=slip.id, status=slip.status, amount=to_money(slip.amount), credited=False, review_reason=reason)

    async def _get(self, slip_id: int) -> SlipRecord:
        slip = await self.slips.get(slip_id)
        if slip is None:
            raise SlipNotFound(f"Slip {slip_id} not found")
        return slip

    async def approve(self, slip_id: int, *, amount=None, admin_id: int | None = None) -> SlipOutcome:
        slip = await self._get(slip_id)
        amt = to_money(amount) if amount is not None else to_money(slip.amount)
        if amt <= ZERO:
            raise ValidationError("Approval amount must be positive")

        try:
            if not await self.slips.decide(slip.id, to_status=SlipStatus.approved.value, admin_id=admin_id, amount=amt):
                raise AlreadyProcessed("Slip already processed")
            balance_after = None
            credited = False
            if self.credit_mode:
                entry = await self.credit.apply_delta(
                    slip.account_id,
                    amt,
                    LedgerEntryType.topup,
                    description=f"เติมเงิน (อนุมัติโดยแอดมิน) สลิป #{slip.id}",
                    slip_id=slip.id,
                    meta={"admin_id": admin_id} if admin_id is not None else None,
                )
                balance_after = to_money(entry.balance_after)
                credited = True
            account = await self.credit.get(slip.account_id)
            msg = f"✅ อนุมัติสลิปแล้ว\nจำนวน: {format_currency(amt)}"
            if balance_after is not None:
                msg += f"\nยอดเงินคงเหลือ: {format_currency(balance_after)}"
            await notify.notify_user(self.session, account, [msg])
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(f"Slip approval failed: {type(e).__name__}") from e
        except CreditShopError:
            await self.session.rollback()
            raise

        log.info("[slips] approved slip=%s amount=%s admin=%s credited=%s", slip.id, amt, admin_id, credited)
        return SlipOutcome(slip_id=slip.id, status=SlipStatus.approved.value, amount=amt, credited=credited, balance_after=balance_after)

    async def reject(self, slip_id: int, *, reason: str | None = None, admin_id: int | None = None) -> SlipOutcome:
        slip = await self._get(slip_id)
        try:
            if not await self.slips.decide(
                slip.id,
                to_status=SlipStatus.rejected.value,
                admin_id=admin_id,
                rejection_reason=reason,
            ):
                raise AlreadyProcessed("Slip already processed")
            account = await self.credit.get(slip.account_id)
            msg = "❌ สลิปของคุณถูกปฏิเสธ"
            if reason:
                msg += f"\nเหตุผล: {reason}"
            await notify.notify_user(self.session, account, [msg])
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(f"Slip rejection failed: {type(e).__name__}") from e
        except CreditShopError:
            await self.session.rollback()
            raise

        log.info("[slips] rejected slip=%s admin=%s reason=%s", slip.id, admin_id, reason)
        return SlipOutcome(slip_id=slip.id, status=SlipStatus.rejected.value, amount=to_money(slip.amount), credited=False)
