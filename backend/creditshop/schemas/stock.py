from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class StockItemOut(BaseModel):
    id: int
    product_id: int
    payload: dict[str, str]
    status: str
    sold_to_account_id: int | None = None
    sold_at: datetime | None = None
    created_at: datetime


class StockItemsCreate(BaseModel):
    """Bulk load. Each record becomes `duplicate_factor` units (default: the product's retail multiplier)."""

    items: list[dict[str, str]] = Field(min_length=1, max_length=1000)
    duplicate_factor: int | None = Field(default=None, ge=1, le=100)


class StockItemUpdate(BaseModel):
    payload: dict[str, str] | None = None
    status: str | None = None
