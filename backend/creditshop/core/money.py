from __future__ import annotations

from decimal import Decimal, InvalidOperation

from creditshop.core.errors import ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Not a money amount: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"Not a money amount: {value!r}")
    return amount.quantize(CENT)


def format_currency(value) -> str:
    """฿1,234.50 / -฿30.00"""
    amount = to_money(value if value is not None else 0)
    sign = "-" if amount < 0 else ""
    return f"{sign}฿{abs(amount):,.2f}"
