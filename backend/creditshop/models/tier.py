from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from creditshop.models.base import Base


class CreditTier(Base):
    __tablename__ = "credit_tiers"

    id: Mapped[int] = mapped_column(primary_key=True)
    min_spend: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    credit_limit_grant: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
