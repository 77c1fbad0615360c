from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation


@dataclass(frozen=True)
class Intent:
    kind: str
    args: tuple[str, ...] = field(default_factory=tuple)

    @property
    def arg(self) -> str:
        return self.args[0] if self.args else ""


# Whole-message commands, matched case-insensitively.
_EXACT = {
    "/bal": "balance",
    "ยอดเงิน": "balance",
    "/history": "history",
    "ประวัติ": "history",
    "/product": "catalog",
    "/สค": "catalog",
    "/ready": "ready",
    "/พส": "ready",
    "/help": "help",
    "/บอท": "help",
    "/ah": "admin_help",
    "/รวมคำสั่งadmin": "admin_help",
    "/clear": "clear_target",
    "/ยกเลิกการช่วย": "clear_target",
    "/cancel": "cancel",
    "ยกเลิก": "cancel",
}

# (prefix, kind); the first matching prefix wins.
_PREFIXED = [
    ("/load", "load"),
    ("/buy", "buy"),
    ("/makemeadmin", "make_me_admin"),
    ("/request-credit", "request_credit"),
    ("/สก", "request_credit"),
    ("/credit-approve", "credit_approve"),
    ("/give", "give"),
    ("/g", "give"),
    ("/target", "target"),
    ("/admin", "admin_message"),
    ("แอดมิน", "admin_message"),
]

# Commands whose remainder is free text rather than whitespace separated args.
_FREE_TEXT = {"admin_message", "request_credit"}


def parse_amount(text: str) -> Decimal | None:
    try:
        value = Decimal(text.strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def parse_intent(text: str, *, is_group: bool = False, in_admin_group: bool = False) -> Intent:
    """Map a chat text to an intent.

    Bare numbers become `amount` (an admin typing an approval amount, or a
    numeric product code). Plain chatter in groups is ignored; in the admin
    group nothing but commands and amounts is acted on.
    """
    raw = (text or "").strip()
    if not raw:
        return Intent("ignore")
    if parse_amount(raw) is not None and raw.replace(",", "").replace(".", "").isdigit():
        return Intent("amount", (raw,))
    low = raw.lower()

    if low in _EXACT:
        return Intent(_EXACT[low])

    for prefix, kind in _PREFIXED:
        if low == prefix or low.startswith(prefix + " "):
            rest = raw[len(prefix):].strip()
            if kind in _FREE_TEXT:
                return Intent(kind, (rest,) if rest else ())
            return Intent(kind, tuple(rest.split()))
        # Thai prefixes are typed without a separating space.
        if kind in _FREE_TEXT and not prefix.isascii() and low.startswith(prefix):
            rest = raw[len(prefix):].strip()
            return Intent(kind, (rest,) if rest else ())

    if raw.startswith("/") and len(raw) > 1:
        return Intent("shortcode_buy", (low[1:].strip(),))
    if raw.startswith("/") or is_group or in_admin_group:
        return Intent("ignore")
    return Intent("stock_check", (low,))
