from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class UserOut(BaseModel):
    id: int
    line_user_id: str
    display_name: str
    balance: Decimal
    credit_limit: Decimal
    lifetime_spend: Decimal
    is_admin: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CreditLimitUpdate(BaseModel):
    credit_limit: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    reason: str | None = Field(default=None, max_length=255)


class LedgerEntryOut(BaseModel):
    id: int
    account_id: int
    type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    product_id: int | None = None
    stock_item_id: int | None = None
    slip_id: int | None = None
    description: str | None = None
    meta: dict[str, Any] | None = None
    created_at: datetime

    class Config:
        from_attributes = True
