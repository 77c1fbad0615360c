from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from creditshop.models.base import Base
from creditshop.models.enums import SlipStatus


class SlipRecord(Base):
    __tablename__ = "slips"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)

    slip_payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Bank transfer reference; a given transfer can credit at most once.
    # Empty for manual review requests where the verifier gave no reference.
    trans_ref: Mapped[str | None] = mapped_column(String(100), unique=True, index=True, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receiver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sending_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receiving_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transferred_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(String(16), default=SlipStatus.pending.value, index=True, nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    decided_by_admin_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
