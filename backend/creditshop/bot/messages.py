"""User-facing chat texts (Thai)."""

from __future__ import annotations

from datetime import timezone, timedelta
from decimal import Decimal

from creditshop.core.db import ensure_utc
from creditshop.core.errors import InsufficientCredit
from creditshop.core.money import format_currency
from creditshop.models.account import Account
from creditshop.models.enums import LedgerEntryType
from creditshop.models.ledger import LedgerEntry
from creditshop.models.product import Product
from creditshop.services.purchase import PurchaseOutcome
from creditshop.services.slips import SlipOutcome
from creditshop.services.tokens import RedeemResult

BANGKOK = timezone(timedelta(hours=7))

GENERIC_ERROR = "เกิดข้อผิดพลาด กรุณาลองใหม่อีกครั้ง"
PRODUCT_NOT_FOUND = "❌ ไม่พบสินค้าหรือสินค้าไม่พร้อมขาย"
OUT_OF_STOCK = "❌ สินค้าหมดสต็อก"
TOKEN_NOT_FOUND = "❌ โทเค็นไม่ถูกต้องหรือถูกใช้ไปแล้ว"
TOKEN_EXPIRED = "❌ โทเค็นหมดอายุแล้ว"
TOKEN_MISSING = "กรุณาระบุโทเค็น\nตัวอย่าง: /load ABC123"
BUY_USAGE = "กรุณาระบุรหัสสินค้าหรือ short code\nตัวอย่าง: /buy 1 หรือ /nf7"
GIVE_USAGE = "รูปแบบคำสั่งไม่ถูกต้อง\nใช้: /give {user_id} {product_code}\nตัวอย่าง: /give 1 nf7"
CREDIT_APPROVE_USAGE = "❌ รูปแบบคำสั่งไม่ถูกต้อง\nใช้: /credit-approve {user_id} {amount}"
TARGET_USAGE = "❌ รูปแบบไม่ถูกต้อง\nใช้: /target {LINE_USER_ID}\nตัวอย่าง: /target U3123f451c952d28b86866578d91ff2a5"
ACCOUNT_NOT_FOUND = "❌ ไม่พบข้อมูลผู้ใช้"
ADMIN_GROUP_SET = "✅ กลุ่มนี้ถูกตั้งเป็นกลุ่มแอดมินเรียบร้อยแล้ว"
ADMIN_GROUP_MISSING = "❌ ยังไม่ได้ตั้งค่ากลุ่มแอดมิน กรุณาติดต่อผู้ดูแลระบบ"
ADMIN_MESSAGE_SENT = "✅ ส่งข้อความถึงแอดมินเรียบร้อยแล้ว\nแอดมินจะติดต่อกลับเร็วๆ นี้"
CREDIT_REQUEST_SENT = "✅ ส่งคำขอเพิ่มเครดิตไปยังแอดมินเรียบร้อยแล้ว\nกรุณารอการตอบกลับจากแอดมิน"
FEATURE_NOT_CONFIGURED = "❌ ฟีเจอร์นี้ยังไม่ได้ตั้งค่า"
WRONG_CODE = "❌ รหัสไม่ถูกต้อง"
ALREADY_ADMIN = "✅ คุณเป็นแอดมินอยู่แล้ว"
MADE_ADMIN = (
    "✅ ยินดีด้วย! คุณเป็นแอดมินแล้ว\n"
    "คุณสามารถใช้คำสั่งแอดมินได้:\n"
    "🎁 /g {user_id} {product_code}\n"
    "💵 /credit-approve {user_id} {amount}\n"
    "พิมพ์ /ah เพื่อดูคำสั่งแอดมินทั้งหมด"
)
NO_PENDING_APPROVAL = "ไม่มีรายการที่รอการอนุมัติ"
APPROVAL_CANCELLED = "✅ ยกเลิกการอนุมัติสลิปเรียบร้อยแล้ว"
TARGET_CLEARED = "✅ ยกเลิกการช่วยลูกค้าแล้ว"
NO_TARGET = "ไม่มีลูกค้าที่กำลังช่วยอยู่"
SLIP_ALREADY_USED = "❌ สลิปนี้ถูกใช้ไปแล้ว"
SLIP_ALREADY_PROCESSED = "❌ สลิปนี้ถูกดำเนินการไปแล้ว"
SLIP_NOT_FOUND = "❌ ไม่พบข้อมูลสลิป"
SLIP_REVIEW_QUEUED = "⏳ ได้รับสลิปแล้ว กำลังส่งให้แอดมินตรวจสอบ\nจะแจ้งผลให้ทราบโดยเร็วที่สุด"
NO_PRODUCTS = "ขณะนี้ยังไม่มีสินค้าในระบบ"
HOW_TO_BUY = "💡 วิธีซื้อ: พิมพ์รหัสสินค้า เช่น /nf7"

HELP = (
    "คำสั่งที่ใช้ได้:\n"
    "💰 /bal หรือ ยอดเงิน - ดูยอดเครดิต\n"
    "📋 /history หรือ ประวัติ - ดูประวัติ 10 รายการล่าสุด\n"
    "🎟️ /load {โทเค็น} - เติมเครดิตด้วยโทเค็น\n"
    "🛒 /buy {รหัส} หรือ /{รหัสสินค้า} - ซื้อสินค้า\n"
    "📦 /product หรือ /สค - ดูรายการสินค้า\n"
    "✅ /ready หรือ /พส - ดูสินค้าพร้อมส่ง\n"
    "💳 /request-credit หรือ /สก - ขอเพิ่มวงเงินเครดิต\n"
    "📢 /admin {ข้อความ} หรือ แอดมิน - ติดต่อแอดมิน\n"
    "🧾 ส่งรูปสลิปโอนเงินเพื่อเติมเครดิต"
)

ADMIN_HELP = (
    "📚 คำสั่งสำหรับแอดมิน:\n\n"
    "🎯 /target {LINE_USER_ID}\n"
    "   - เลือกลูกค้าที่จะช่วย แล้วพิมพ์รหัสสินค้า เช่น \"nf7\"\n"
    "   - พิมพ์ /clear เพื่อยกเลิก\n\n"
    "💵 /credit-approve {user_id} {amount}\n"
    "   - เพิ่มวงเงินเครดิตให้ผู้ใช้\n\n"
    "🎁 /give {user_id} {product_code}\n"
    "   - ส่งสินค้าให้ผู้ใช้และหักเครดิต บังคับส่งได้แม้เครดิตไม่พอ\n\n"
    "🔧 การตั้งค่า:\n"
    "   - /admin {token} ในกลุ่ม - ตั้งกลุ่มแอดมิน\n"
    "   - /makemeadmin {token} - เป็นแอดมิน"
)

_TYPE_LABELS = {
    LedgerEntryType.purchase.value: ("🛒", "ซื้อสินค้า"),
    LedgerEntryType.topup.value: ("💳", "เติมเงิน"),
    LedgerEntryType.adjustment.value: ("⚙️", "ปรับยอด"),
    LedgerEntryType.refund.value: ("🔄", "คืนเงิน"),
}


def signed_currency(amount) -> str:
    amount = Decimal(amount)
    if amount < 0:
        return format_currency(amount)
    return "+" + format_currency(amount)


def balance(account: Account) -> str:
    return (
        "💰 ยอดเครดิตของคุณ\n"
        f"เครดิตปัจจุบัน: {format_currency(account.balance)}\n"
        f"วงเงินเครดิต: {format_currency(account.credit_limit)}\n"
        f"เครดิตที่ใช้ได้: {format_currency(account.available_credit)}\n"
        f"ยอดซื้อสะสม: {format_currency(account.lifetime_spend)}"
    )


def history(entries: list[LedgerEntry], product_names: dict[int, str]) -> str:
    if not entries:
        return "ยังไม่มีประวัติการทำรายการ"
    blocks = []
    for e in entries:
        emoji, label = _TYPE_LABELS.get(e.type, ("•", e.type))
        lines = [f"{emoji} {label}"]
        if e.type == LedgerEntryType.purchase.value and e.product_id:
            lines.append(f"สินค้า: {product_names.get(e.product_id, '-')}")
        if Decimal(e.amount) != 0:
            lines.append(f"จำนวน: {signed_currency(e.amount)}")
        elif e.description:
            lines.append(e.description)
        lines.append(f"คงเหลือ: {format_currency(e.balance_after)}")
        lines.append(ensure_utc(e.created_at).astimezone(BANGKOK).strftime("%d/%m/%y %H:%M"))
        blocks.append("\n".join(lines))
    return "📋 ประวัติการทำรายการ (10 รายการล่าสุด)\n\n" + "\n\n".join(blocks)


def insufficient_credit(price: Decimal, err: InsufficientCredit) -> str:
    return (
        "❌ เครดิตไม่เพียงพอ\n\n"
        f"ราคาสินค้า: {format_currency(price)}\n"
        f"ยอดเงินปัจจุบัน: {format_currency(err.balance or 0)}\n"
        f"วงเงินเครดิต: {format_currency(err.credit_limit or 0)}\n\n"
        "ขอเพิ่มวงเงินเครดิตพิมพ์ '/สก'"
    )


def purchase_done(outcome: PurchaseOutcome) -> str:
    msg = (
        "✅ ซื้อสินค้าสำเร็จ!\n"
        f"สินค้า: {outcome.product_name}\n"
        f"ราคา: {format_currency(outcome.price)}\n"
        f"คงเหลือ: {format_currency(outcome.balance_after)}"
    )
    if outcome.spend.credit_limit_raised:
        msg += (
            f"\n\n🎉 ยินดีด้วย! ยอดซื้อสะสมของคุณถึง {format_currency(outcome.spend.lifetime_spend)} แล้ว"
            f"\n💳 วงเงินเครดิตเพิ่มเป็น: {format_currency(outcome.spend.credit_limit)}"
        )
    return msg


def gift_done(outcome: PurchaseOutcome, recipient: Account) -> str:
    msg = (
        "✅ ส่งสินค้าสำเร็จ!\n"
        f"ผู้รับ: {recipient.display_name} (ID: {recipient.id})\n"
        f"สินค้า: {outcome.product_name}\n"
        f"ราคา: {format_currency(outcome.price)}\n"
        f"ยอดเงินเดิม: {format_currency(outcome.balance_before)}\n"
        f"ยอดเงินใหม่: {format_currency(outcome.balance_after)}"
    )
    if outcome.balance_after < 0:
        msg += f"\n\n⚠️ ผู้ใช้มียอดติดลบ: {format_currency(outcome.balance_after)}"
    return msg


def token_redeemed(result: RedeemResult) -> str:
    lines = ["✅ เติมเครดิตสำเร็จ!"]
    if result.credit_granted > 0:
        lines.append(f"จำนวน: {format_currency(result.credit_granted)}")
    if result.limit_granted > 0:
        lines.append(f"วงเงินเครดิตเพิ่ม: {format_currency(result.limit_granted)}")
    lines.append(f"ยอดเครดิตใหม่: {format_currency(result.balance_after)}")
    lines.append(f"วงเงินเครดิตใหม่: {format_currency(result.credit_limit)}")
    return "\n".join(lines)


def slip_result(outcome: SlipOutcome) -> str:
    if outcome.status == "pending":
        return SLIP_REVIEW_QUEUED
    if outcome.credited:
        return (
            "✅ เติมเงินสำเร็จ!\n"
            f"จำนวนเงิน: {format_currency(outcome.amount)}\n"
            f"ยอดเครดิตใหม่: {format_currency(outcome.balance_after or 0)}"
        )
    return f"✅ ยืนยันสลิป!\nจำนวนเงิน: {format_currency(outcome.amount)}"


def limit_raised_for_user(amount: Decimal, before: Decimal, after: Decimal, balance_value: Decimal) -> str:
    return (
        "✅ แอดมินเพิ่มวงเงินเครดิตให้คุณแล้ว!\n"
        f"เพิ่มวงเงิน: {format_currency(amount)}\n"
        f"วงเงินเดิม: {format_currency(before)}\n"
        f"วงเงินใหม่: {format_currency(after)}\n"
        f"เครดิตที่ใช้ได้ใหม่: {format_currency(balance_value + after)}\n\n"
        "ขอบคุณที่ใช้บริการครับ"
    )


def limit_raised_for_admin(account: Account, amount: Decimal, after: Decimal) -> str:
    return (
        "✅ เพิ่มวงเงินเครดิตสำเร็จ\n\n"
        f"เพิ่มวงเงินให้ {account.display_name} จำนวน {format_currency(amount)}\n"
        f"วงเงินเครดิตใหม่: {format_currency(after)}"
    )


def _product_line(p: Product, with_stock: bool = True) -> str:
    codes = " ".join(f"/{sc.code}" for sc in (p.short_codes or []))
    parts = [f"• {p.name} - {format_currency(p.price)}"]
    if with_stock:
        parts.append(f"  สต็อก: {p.stock} ชิ้น{' | ' + codes if codes else ''}")
    elif codes:
        parts.append(f"  รหัส: {codes}")
    return "\n".join(parts)


def catalog(products: list[Product]) -> str:
    if not products:
        return NO_PRODUCTS
    grouped: dict[str, list[Product]] = {}
    for p in products:
        grouped.setdefault(p.category or "อื่นๆ", []).append(p)
    blocks = ["📦 รายการสินค้า"]
    for category, items in grouped.items():
        blocks.append(f"【{category}】\n" + "\n".join(_product_line(p) for p in items))
    blocks.append(HOW_TO_BUY)
    return "\n\n".join(blocks)


def ready_list(products: list[Product]) -> str:
    if not products:
        return NO_PRODUCTS
    in_stock = [p for p in products if p.stock > 0]
    sold_out = [p for p in products if p.stock <= 0]
    blocks = [f"✅ พร้อมขาย ({len(in_stock)})"]
    if in_stock:
        blocks.append("\n".join(_product_line(p) for p in in_stock))
    if sold_out:
        blocks.append(f"❌ หมดสต็อก ({len(sold_out)})\n" + "\n".join(_product_line(p, with_stock=False) for p in sold_out))
    blocks.append(HOW_TO_BUY)
    return "\n\n".join(blocks)


def stock_status(product: Product, code: str) -> str:
    if not product.active:
        return "❌ สินค้านี้ปิดการขายแล้ว"
    if product.stock > 0:
        return (
            f"{product.name}\n"
            f"สถานะ: ✅ สินค้าพร้อมส่ง {product.stock} ชิ้น\n"
            f"ราคา: {format_currency(product.price)}\n"
            f"สั่งซื้อพิมพ์: /{code}"
        )
    return f"{product.name}\nสถานะ: ❌ ไม่พร้อมส่ง\nสินค้าหมดชั่วคราว"


def admin_contact(account: Account, text: str) -> str:
    return (
        "📢 มีผู้ใช้ติดต่อแอดมิน\n"
        f"ผู้ใช้: {account.display_name} (ID: {account.id})\n"
        f"LINE ID: {account.line_user_id}\n"
        f"ข้อความ: {text or '-'}\n\n"
        "กรุณาติดต่อกลับผู้ใช้"
    )


def target_set(account: Account) -> str:
    return (
        f"✅ กำลังช่วยลูกค้า: {account.display_name}\n"
        f"LINE ID: {account.line_user_id}\n"
        "ตอนนี้คุณสามารถพิมพ์รหัสสินค้า เช่น \"nf7\" เพื่อส่งสินค้าให้ลูกค้าได้เลย\n"
        "พิมพ์ /clear เพื่อยกเลิก"
    )


def approval_prompt(slip_id: int) -> str:
    return f"💵 กรุณาพิมพ์จำนวนเงินสำหรับสลิป #{slip_id}\nหรือพิมพ์ /cancel เพื่อยกเลิก"


def slip_approved_for_admin(outcome: SlipOutcome, account: Account) -> str:
    return f"✅ อนุมัติสลิปสำเร็จ\n\nเพิ่มเครดิตให้ {account.display_name} จำนวน {format_currency(outcome.amount)}"


def slip_rejected_for_admin(slip_id: int) -> str:
    return f"✅ ปฏิเสธสลิป #{slip_id} แล้ว"
