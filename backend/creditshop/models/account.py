from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from creditshop.models.base import Base


class Account(Base):
    """A LINE user's credit account.

    `credit_limit` is the debt the user may run up: balance may go down to -credit_limit.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credit_limit >= 0", name="ck_users_credit_limit_non_negative"),
        CheckConstraint("lifetime_spend >= 0", name="ck_users_lifetime_spend_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    line_user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    credit_limit: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    lifetime_spend: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    # LINE-side admin (can run admin chat commands); unrelated to dashboard admins.
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    @property
    def available_credit(self) -> Decimal:
        return Decimal(self.balance) + Decimal(self.credit_limit)
