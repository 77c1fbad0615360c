"""LINE message builders for notifications that go through the outbox."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from creditshop.core import json
from creditshop.core.config import settings
from creditshop.core.money import format_currency
from creditshop.models.account import Account
from creditshop.models.slip import SlipRecord
from creditshop.repos.job_repo import JobRepo
from creditshop.repos.settings_repo import SettingsRepo

log = logging.getLogger(__name__)


def postback(label: str, action: str, **params) -> dict:
    return {
        "type": "postback",
        "label": label[:20],
        "data": json.dumps({"action": action, **params}),
        "displayText": label,
    }


def buttons(alt_text: str, text: str, actions: list[dict], title: str | None = None) -> dict:
    template: dict = {"type": "buttons", "text": text[:160], "actions": actions[:4]}
    if title:
        template["title"] = title[:40]
    return {"type": "template", "altText": alt_text[:400], "template": template}


def text(value: str) -> dict:
    return {"type": "text", "text": value[:5000]}


def slip_review_messages(slip: SlipRecord, account: Account) -> list[dict]:
    details = [
        "🧾 สลิปรอตรวจสอบ",
        f"ผู้ใช้: {account.display_name} (ID: {account.id})",
        f"ยอด: {format_currency(slip.amount)}" if slip.amount else "ยอด: ไม่ทราบ",
    ]
    if slip.trans_ref:
        details.append(f"อ้างอิง: {slip.trans_ref}")
    if slip.sender_name:
        details.append(f"ผู้โอน: {slip.sender_name}")
    if slip.review_reason:
        details.append(f"เหตุผล: {slip.review_reason}")
    msgs = [text("\n".join(details))]
    if slip.image_url:
        msgs.append({"type": "image", "originalContentUrl": slip.image_url, "previewImageUrl": slip.image_url})
    msgs.append(
        buttons(
            alt_text=f"สลิป #{slip.id} รอตรวจสอบ",
            text=f"สลิป #{slip.id} ของ {account.display_name}",
            actions=[
                postback("อนุมัติ", "approve_slip", slip_id=slip.id),
                postback("ปฏิเสธ", "reject_slip", slip_id=slip.id),
            ],
        )
    )
    return msgs


def credit_request_messages(account: Account) -> list[dict]:
    presets: list[Decimal] = list(settings.CREDIT_REQUEST_PRESETS)[:3]
    actions = [
        postback(f"+{format_currency(p)}", "add_credit", account_id=account.id, amount=str(p))
        for p in presets
    ]
    body = (
        f"💳 ขอเพิ่มวงเงินเครดิต\nผู้ใช้: {account.display_name} (ID: {account.id})\n"
        f"ยอดเงิน: {format_currency(account.balance)}\n"
        f"วงเงินปัจจุบัน: {format_currency(account.credit_limit)}\n"
        f"ยอดซื้อสะสม: {format_currency(account.lifetime_spend)}"
    )
    return [
        text(body),
        buttons(alt_text="ขอเพิ่มวงเงินเครดิต", text=f"เพิ่มวงเงินให้ {account.display_name}", actions=actions),
    ]


async def notify_admins(session: AsyncSession, messages: list[dict] | list[str]) -> bool:
    """Queue a push to the admin group. Returns False when no group is registered."""
    group_id = await SettingsRepo(session).get_admin_group_id()
    if not group_id:
        log.warning("[notify] admin group not set, dropping notification")
        return False
    await JobRepo(session).enqueue_push(group_id, messages)
    return True


async def notify_user(session: AsyncSession, account: Account, messages: list[dict] | list[str]) -> None:
    await JobRepo(session).enqueue_push(account.line_user_id, messages)
