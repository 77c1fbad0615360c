from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ShortCodeOut(BaseModel):
    id: int
    product_id: int
    code: str

    class Config:
        from_attributes = True


class ShortCodeCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64, pattern=r"^[^\s/]+$")


class ProductOut(BaseModel):
    id: int
    name: str
    price: Decimal
    description: str | None = None
    category: str | None = None
    message_template: str | None = None
    active: bool
    retail_multiplier: int
    stock: int
    short_codes: list[ShortCodeOut] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    description: str | None = None
    category: str | None = Field(default=None, max_length=128)
    message_template: str | None = None
    active: bool = True
    retail_multiplier: int = Field(default=1, ge=1, le=100)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    description: str | None = None
    category: str | None = Field(default=None, max_length=128)
    message_template: str | None = None
    active: bool | None = None
    retail_multiplier: int | None = Field(default=None, ge=1, le=100)
