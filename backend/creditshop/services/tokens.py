from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core.db import ensure_utc
from creditshop.core.errors import CreditShopError, StorageError, TokenExpired, TokenNotFound, ValidationError
from creditshop.core.money import ZERO, to_money
from creditshop.models.enums import LedgerEntryType
from creditshop.models.token import CreditToken
from creditshop.repos.token_repo import TokenRepo
from creditshop.services.credit import CreditService

log = logging.getLogger(__name__)

CODE_BYTES = 4  # 8 hex chars


def normalize_token(code: str) -> str:
    return (code or "").strip().upper()


@dataclass(frozen=True)
class RedeemResult:
    credit_granted: Decimal
    limit_granted: Decimal
    balance_after: Decimal
    credit_limit: Decimal


class TokenService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.tokens = TokenRepo(session)
        self.credit = CreditService(session)

    async def redeem(self, code: str, account_id: int) -> RedeemResult:
        """Spend a credit token. At most one redemption can ever succeed per token."""
        norm = normalize_token(code)
        if not norm:
            raise TokenNotFound("No token given")
        now = datetime.now(timezone.utc)
        try:
            token = await self.tokens.get_by_code(norm)
            if token is None or token.used_at is not None:
                raise TokenNotFound("Token not found or already used")
            if ensure_utc(token.expires_at) <= now:
                raise TokenExpired("Token expired")

            if not await self.tokens.mark_used(token.id, account_id, now):
                # Someone redeemed it between our read and the update.
                raise TokenNotFound("Token not found or already used")

            credit = to_money(token.credit_amount)
            bonus = to_money(token.limit_bonus)
            if credit > ZERO:
                await self.credit.apply_delta(
                    account_id,
                    credit,
                    LedgerEntryType.topup,
                    description=f"เติมเงินด้วยโทเค็น {norm}",
                    meta={"token_id": token.id},
                )
            if bonus > ZERO:
                await self.credit.raise_credit_limit(account_id, bonus, reason=f"โบนัสวงเงินจากโทเค็น {norm}")
            account = await self.credit.get(account_id)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(f"Token redemption failed: {type(e).__name__}") from e
        except CreditShopError:
            await self.session.rollback()
            raise

        log.info("[tokens] redeemed token=%s account=%s credit=%s bonus=%s", token.id, account_id, credit, bonus)
        return RedeemResult(
            credit_granted=credit,
            limit_granted=bonus,
            balance_after=to_money(account.balance),
            credit_limit=to_money(account.credit_limit),
        )

    async def generate(
        self,
        credit_amount,
        limit_bonus=0,
        days_valid: int = 30,
        admin_id: int | None = None,
    ) -> CreditToken:
        credit = to_money(credit_amount)
        bonus = to_money(limit_bonus or 0)
        if credit < ZERO or bonus < ZERO or (credit == ZERO and bonus == ZERO):
            raise ValidationError("Token must grant credit or a limit bonus")
        if int(days_valid) < 1:
            raise ValidationError("Token must be valid for at least one day")

        expires_at = datetime.now(timezone.utc) + timedelta(days=int(days_valid))
        for _ in range(5):
            try:
                token = await self.tokens.create(
                    code=secrets.token_hex(CODE_BYTES).upper(),
                    credit_amount=credit,
                    limit_bonus=bonus,
                    expires_at=expires_at,
                    created_by_admin_id=admin_id,
                )
                await self.session.commit()
            except IntegrityError:
                # Code collision; try another one.
                await self.session.rollback()
                continue
            log.info("[tokens] generated token=%s credit=%s bonus=%s expires=%s", token.id, credit, bonus, expires_at)
            return token
        raise StorageError("Could not allocate a unique token code")
