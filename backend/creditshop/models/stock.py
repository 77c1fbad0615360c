from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from creditshop.models.base import Base, JSONType
from creditshop.models.enums import StockStatus


class StockUnit(Base):
    __tablename__ = "stock_items"
    __table_args__ = (
        Index("ix_stock_items_product_status", "product_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)

    # Sealed by core.crypto.seal_payload; read through StockService.
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    status: Mapped[str] = mapped_column(String(16), default=StockStatus.available.value, nullable=False)
    sold_to_account_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    sold_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
