from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from creditshop.bot import messages
from creditshop.core.errors import InsufficientCredit
from creditshop.services.credit import SpendResult
from creditshop.services.purchase import PurchaseOutcome


def product(name, price, stock, codes=(), category=None, active=True):
    return SimpleNamespace(
        name=name,
        price=Decimal(price),
        stock=stock,
        category=category,
        active=active,
        short_codes=[SimpleNamespace(code=c) for c in codes],
    )


def outcome(balance_after="-30", raised=False):
    return PurchaseOutcome(
        account_id=1,
        product_id=2,
        product_name="Netflix 7 days",
        stock_item_id=3,
        price=Decimal("30.00"),
        balance_before=Decimal("0.00"),
        balance_after=Decimal(balance_after),
        ledger_entry_id=4,
        disclosure="user: a",
        spend=SpendResult(lifetime_spend=Decimal("100.00"), credit_limit=Decimal("50.00"), credit_limit_raised=raised),
    )


def test_balance_lists_available_credit():
    acc = SimpleNamespace(
        balance=Decimal("-20"),
        credit_limit=Decimal("50"),
        available_credit=Decimal("30"),
        lifetime_spend=Decimal("1234.5"),
    )
    text = messages.balance(acc)
    assert "เครดิตปัจจุบัน: -฿20.00" in text
    assert "เครดิตที่ใช้ได้: ฿30.00" in text
    assert "ยอดซื้อสะสม: ฿1,234.50" in text


def test_history_uses_bangkok_time():
    entry = SimpleNamespace(
        type="purchase",
        product_id=7,
        amount=Decimal("-30"),
        description=None,
        balance_after=Decimal("-30"),
        created_at=datetime(2026, 10, 18, 17, 30, tzinfo=timezone.utc),
    )
    text = messages.history([entry], {7: "Netflix 7 days"})
    assert "สินค้า: Netflix 7 days" in text
    assert "จำนวน: -฿30.00" in text
    assert "19/10/26 00:30" in text
    assert messages.history([], {}) == "ยังไม่มีประวัติการทำรายการ"


def test_insufficient_credit_shows_numbers():
    err = InsufficientCredit(required=Decimal("30"), balance=Decimal("-30"), credit_limit=Decimal("50"))
    text = messages.insufficient_credit(Decimal("30"), err)
    assert text.startswith("❌ เครดิตไม่เพียงพอ")
    assert "ยอดเงินปัจจุบัน: -฿30.00" in text


def test_purchase_done_mentions_tier_raise():
    assert "🎉" not in messages.purchase_done(outcome())
    assert "วงเงินเครดิตเพิ่มเป็น: ฿50.00" in messages.purchase_done(outcome(raised=True))


def test_gift_done_warns_on_negative_balance():
    recipient = SimpleNamespace(display_name="Somchai", id=1)
    assert "⚠️" in messages.gift_done(outcome("-30"), recipient)
    assert "⚠️" not in messages.gift_done(outcome("10"), recipient)


def test_catalog_groups_by_category():
    text = messages.catalog(
        [
            product("Netflix", "30", 2, ("nf7",), category="Streaming"),
            product("Spotify", "20", 0, ("sp",), category="Streaming"),
            product("Canva", "15", 1),
        ]
    )
    assert "【Streaming】" in text
    assert "【อื่นๆ】" in text
    assert "/nf7" in text
    assert messages.catalog([]) == messages.NO_PRODUCTS


def test_ready_list_splits_sold_out():
    text = messages.ready_list([product("Netflix", "30", 2, ("nf7",)), product("Spotify", "20", 0, ("sp",))])
    assert "✅ พร้อมขาย (1)" in text
    assert "❌ หมดสต็อก (1)" in text


def test_stock_status():
    assert "สินค้าพร้อมส่ง 2 ชิ้น" in messages.stock_status(product("Netflix", "30", 2), "nf7")
    assert "ไม่พร้อมส่ง" in messages.stock_status(product("Netflix", "30", 0), "nf7")
    assert messages.stock_status(product("Netflix", "30", 2, active=False), "nf7") == "❌ สินค้านี้ปิดการขายแล้ว"
