from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class SlipOut(BaseModel):
    id: int
    account_id: int
    trans_ref: str | None = None
    amount: Decimal
    sender_name: str | None = None
    receiver_name: str | None = None
    sending_bank: str | None = None
    receiving_bank: str | None = None
    transferred_at: datetime | None = None
    status: str
    image_url: str | None = None
    review_reason: str | None = None
    rejection_reason: str | None = None
    decided_by_admin_id: int | None = None
    decided_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class SlipApproveRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)


class SlipRejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


class SlipDecisionOut(BaseModel):
    slip_id: int
    status: str
    amount: Decimal
    credited: bool
    balance_after: Decimal | None = None
