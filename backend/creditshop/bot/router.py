"""Chat command routing.

Every handler opens its own session; the services it calls own the commit.
Replies are returned, not sent: the webhook decides whether they go out as a
reply or a push.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creditshop.bot import messages as M
from creditshop.bot.intents import Intent, parse_amount, parse_intent
from creditshop.core import json
from creditshop.core.config import settings
from creditshop.core.errors import (
    AccountNotFound,
    AlreadyProcessed,
    CreditShopError,
    InsufficientCredit,
    OutOfStock,
    ProductNotFound,
    SlipNotFound,
    TokenExpired,
    TokenNotFound,
    ValidationError,
    VerificationFailed,
)
from creditshop.core.money import to_money
from creditshop.line.client import LineApiError, LineMessagingClient
from creditshop.models.account import Account
from creditshop.models.enums import SlipStatus
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.event_repo import ProcessedEventRepo
from creditshop.repos.ledger_repo import LedgerRepo
from creditshop.repos.product_repo import ProductRepo
from creditshop.repos.settings_repo import SettingsRepo
from creditshop.repos.slip_repo import SlipRepo
from creditshop.services import notify
from creditshop.services.blob_store import BlobStore, slip_object_key
from creditshop.services.conversation_state import AdminTarget, ConversationState, PendingApproval
from creditshop.services.credit import CreditService
from creditshop.services.purchase import PurchaseService
from creditshop.services.slip_verifier import SlipVerifier
from creditshop.services.slips import SlipService
from creditshop.services.tokens import TokenService

log = logging.getLogger(__name__)

Reply = dict[str, Any]

# Intents only admins (LINE admin flag or anyone in the admin group) may use.
ADMIN_INTENTS = {"admin_help", "give", "credit_approve", "target", "clear_target", "cancel"}


@dataclass
class BotContext:
    sessionmaker: async_sessionmaker[AsyncSession]
    line: LineMessagingClient
    verifier: SlipVerifier
    blob_store: BlobStore
    state: ConversationState


@dataclass(frozen=True)
class Sender:
    line_user_id: str
    display_name: str
    chat_id: str
    is_group: bool = False


def _t(value: str) -> Reply:
    return notify.text(value)


class CommandRouter:
    def __init__(self, ctx: BotContext):
        self.ctx = ctx

    # ---- entry points ----

    async def handle_event(self, event: dict) -> list[Reply]:
        """Handle one webhook event and send the replies. Returns what was sent.

        Each webhookEventId is claimed up front; a redelivered event is skipped
        even when the first run failed part way.
        """
        event_id = event.get("webhookEventId")
        async with self.ctx.sessionmaker() as session:
            if not await ProcessedEventRepo(session).claim(event_id):
                log.info("[bot] duplicate event %s skipped", event_id)
                return []

        sender = await self._sender(event)
        if sender is None:
            return []

        etype = event.get("type")
        replies: list[Reply] = []
        try:
            if etype == "message":
                msg = event.get("message") or {}
                if msg.get("type") == "text":
                    replies = await self.handle_text(sender, msg.get("text") or "")
                elif msg.get("type") == "image" and not sender.is_group:
                    await self.ctx.line.show_loading(sender.chat_id)
                    replies = await self.handle_image(sender, msg.get("id"))
            elif etype == "postback":
                replies = await self.handle_postback(sender, (event.get("postback") or {}).get("data") or "")
            elif etype == "follow":
                replies = [_t(M.HELP)]
        except CreditShopError as e:
            log.warning("[bot] unhandled %s for %s: %s", type(e).__name__, sender.line_user_id, e)
            replies = [_t(M.GENERIC_ERROR)]

        if replies:
            await self._send(event.get("replyToken"), sender, replies)
        return replies

    async def handle_text(self, sender: Sender, text: str) -> list[Reply]:
        in_admin_group = await self._is_admin_group(sender)
        intent = parse_intent(text, is_group=sender.is_group, in_admin_group=in_admin_group)
        return await self.handle_command(sender, intent)

    async def handle_command(self, sender: Sender, intent: Intent) -> list[Reply]:
        if intent.kind == "ignore":
            return []
        account, is_admin = await self._account(sender)

        if intent.kind in ADMIN_INTENTS and not is_admin:
            if intent.kind == "cancel":
                return [_t(M.NO_PENDING_APPROVAL)]
            return []

        if intent.kind == "amount":
            pending = self.ctx.state.pending_approvals.get(sender.chat_id) if is_admin else None
            if pending is not None:
                return await self._approve_pending(sender, pending, intent.arg, account)
            if sender.is_group:
                return []
            intent = Intent("stock_check", intent.args)

        target = self.ctx.state.admin_targets.get(sender.chat_id) if is_admin else None
        if target is not None and intent.kind in ("shortcode_buy", "stock_check"):
            return await self._give(account, target.account_id, intent.arg)

        handler = getattr(self, f"_cmd_{intent.kind}", None)
        if handler is None:
            log.warning("[bot] no handler for intent %s", intent.kind)
            return []
        return await handler(sender, account, intent)

    async def handle_postback(self, sender: Sender, data: str) -> list[Reply]:
        try:
            payload = json.loads(data) if data else {}
        except ValueError:
            log.warning("[bot] unreadable postback data %r", data)
            return []
        if not isinstance(payload, dict):
            return []
        action = payload.get("action")

        account, is_admin = await self._account(sender)

        if action == "request_manual_approval":
            return await self._request_manual_approval(account, payload)
        if not is_admin:
            log.warning("[bot] non-admin %s sent admin postback %s", sender.line_user_id, action)
            return []
        if action == "approve_slip":
            return await self._start_approval(sender, payload)
        if action == "reject_slip":
            return await self._reject_slip(sender, account, payload)
        if action == "add_credit":
            return await self._add_credit(account, payload.get("account_id"), payload.get("amount"))
        log.warning("[bot] unknown postback action %s", action)
        return []

    async def handle_image(self, sender: Sender, message_id: str | None) -> list[Reply]:
        """Slip top-up from a transfer slip photo."""
        if not message_id:
            return []
        account, _ = await self._account(sender)

        try:
            image = await self.ctx.line.get_content(message_id)
        except LineApiError as e:
            log.warning("[bot] slip image download failed message=%s: %s", message_id, e)
            return [_t(M.GENERIC_ERROR)]

        try:
            verdict = await self.ctx.verifier.verify_image(image, filename=f"{message_id}.jpg")
        except VerificationFailed as e:
            log.warning("[bot] slip verification unavailable account=%s: %s", account.id, e)
            image_url = await self.ctx.blob_store.upload(image, slip_object_key(None))
            return [
                notify.buttons(
                    alt_text="ตรวจสอบสลิปไม่สำเร็จ",
                    text="ระบบตรวจสอบสลิปไม่พร้อมใช้งาน ต้องการส่งให้แอดมินตรวจสอบหรือไม่?",
                    actions=[notify.postback("ส่งให้แอดมิน", "request_manual_approval", image_url=image_url)],
                )
            ]

        image_url = await self.ctx.blob_store.upload(image, slip_object_key(verdict.trans_ref))
        qr_payload = (verdict.raw.get("data") or {}).get("decode") if isinstance(verdict.raw.get("data"), dict) else None
        async with self.ctx.sessionmaker() as session:
            try:
                outcome = await SlipService(session).submit(account.id, verdict, qr_payload=qr_payload, image_url=image_url)
            except AlreadyProcessed:
                return [_t(M.SLIP_ALREADY_USED)]
        return [_t(M.slip_result(outcome))]

    # ---- user commands ----

    async def _cmd_balance(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        return [_t(M.balance(account))]

    async def _cmd_history(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            entries = await LedgerRepo(session).list_for_account(account.id, limit=10)
            names = {p.id: p.name for p in await ProductRepo(session).list()}
        return [_t(M.history(entries, names))]

    async def _cmd_help(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        return [_t(M.HELP)]

    async def _cmd_catalog(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            products = await ProductRepo(session).list(active_only=True)
        return [_t(M.catalog(products))]

    async def _cmd_ready(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            products = await ProductRepo(session).list(active_only=True)
        return [_t(M.ready_list(products))]

    async def _cmd_stock_check(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            product = await ProductRepo(session).get_by_short_code(intent.arg)
        if product is None:
            # Unknown words are ordinary chatter.
            return []
        return [_t(M.stock_status(product, intent.arg))]

    async def _cmd_buy(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if not intent.arg:
            return [_t(M.BUY_USAGE)]
        return await self._buy(account, intent.arg)

    async def _cmd_shortcode_buy(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        return await self._buy(account, intent.arg)

    async def _buy(self, account: Account, identifier: str) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            service = PurchaseService(session)
            try:
                outcome = await service.buy(account.id, identifier)
            except ProductNotFound:
                return [_t(M.PRODUCT_NOT_FOUND)]
            except OutOfStock:
                return [_t(M.OUT_OF_STOCK)]
            except InsufficientCredit as e:
                product = await service.resolve_product(identifier)
                return [_t(M.insufficient_credit(to_money(product.price), e))]
        # The disclosure itself goes out through the outbox push.
        return [_t(M.purchase_done(outcome))]

    async def _cmd_load(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if not intent.arg:
            return [_t(M.TOKEN_MISSING)]
        async with self.ctx.sessionmaker() as session:
            try:
                result = await TokenService(session).redeem(intent.arg, account.id)
            except TokenExpired:
                return [_t(M.TOKEN_EXPIRED)]
            except TokenNotFound:
                return [_t(M.TOKEN_NOT_FOUND)]
        return [_t(M.token_redeemed(result))]

    async def _cmd_request_credit(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            queued = await notify.notify_admins(session, notify.credit_request_messages(account))
            await session.commit()
        return [_t(M.CREDIT_REQUEST_SENT if queued else M.ADMIN_GROUP_MISSING)]

    async def _cmd_admin_message(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if sender.is_group:
            token = settings.SET_ADMIN_GROUP_TOKEN
            if token and intent.arg == token:
                async with self.ctx.sessionmaker() as session:
                    await SettingsRepo(session).set_admin_group_id(sender.chat_id)
                    await session.commit()
                log.info("[bot] admin group set to %s by %s", sender.chat_id, sender.line_user_id)
                return [_t(M.ADMIN_GROUP_SET)]
            return []

        async with self.ctx.sessionmaker() as session:
            queued = await notify.notify_admins(session, [M.admin_contact(account, intent.arg)])
            await session.commit()
        return [_t(M.ADMIN_MESSAGE_SENT if queued else M.ADMIN_GROUP_MISSING)]

    async def _cmd_make_me_admin(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        token = settings.MAKEME_ADMIN_TOKEN
        if not token:
            return [_t(M.FEATURE_NOT_CONFIGURED)]
        if account.is_admin:
            return [_t(M.ALREADY_ADMIN)]
        if intent.arg != token:
            log.warning("[bot] wrong makemeadmin code from %s", sender.line_user_id)
            return [_t(M.WRONG_CODE)]
        async with self.ctx.sessionmaker() as session:
            await AccountRepo(session).set_line_admin(account.id, True)
            await session.commit()
        log.info("[bot] account %s promoted to LINE admin", account.id)
        return [_t(M.MADE_ADMIN)]

    # ---- admin commands ----

    async def _cmd_admin_help(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        return [_t(M.ADMIN_HELP)]

    async def _cmd_give(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if len(intent.args) < 2 or not intent.args[0].isdigit():
            return [_t(M.GIVE_USAGE)]
        return await self._give(account, int(intent.args[0]), intent.args[1])

    async def _give(self, admin: Account, account_id: int, identifier: str) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            try:
                outcome = await PurchaseService(session).gift(account_id, identifier, admin_label=admin.display_name or None)
            except AccountNotFound:
                return [_t(f"❌ ไม่พบผู้ใช้ ID: {account_id}")]
            except ProductNotFound:
                return [_t(M.PRODUCT_NOT_FOUND)]
            except OutOfStock:
                return [_t(f"❌ สินค้า {identifier} หมดสต็อก")]
            recipient = await CreditService(session).get(account_id)
        return [_t(M.gift_done(outcome, recipient))]

    async def _cmd_credit_approve(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if len(intent.args) < 2 or not intent.args[0].isdigit() or parse_amount(intent.args[1]) is None:
            return [_t(M.CREDIT_APPROVE_USAGE)]
        return await self._add_credit(account, int(intent.args[0]), intent.args[1])

    async def _add_credit(self, admin: Account, account_id, amount) -> list[Reply]:
        value = parse_amount(str(amount or ""))
        if value is None or account_id is None:
            return [_t(M.CREDIT_APPROVE_USAGE)]
        async with self.ctx.sessionmaker() as session:
            credit = CreditService(session)
            try:
                target = await credit.get(int(account_id))
                before = to_money(target.credit_limit)
                await credit.raise_credit_limit(target.id, value, reason=f"แอดมินเพิ่มวงเงิน ({admin.display_name})")
                target = await credit.get(target.id)
                after = to_money(target.credit_limit)
                await notify.notify_user(
                    session, target, [M.limit_raised_for_user(to_money(value), before, after, to_money(target.balance))]
                )
                await session.commit()
            except AccountNotFound:
                await session.rollback()
                return [_t(f"❌ ไม่พบผู้ใช้ ID: {account_id}")]
        log.info("[bot] admin %s raised credit limit of %s by %s", admin.id, account_id, value)
        return [_t(M.limit_raised_for_admin(target, to_money(value), after))]

    async def _cmd_target(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if not intent.arg or not intent.arg.startswith("U"):
            return [_t(M.TARGET_USAGE)]
        async with self.ctx.sessionmaker() as session:
            customer = await AccountRepo(session).get_by_line_user_id(intent.arg)
        if customer is None:
            return [_t(M.ACCOUNT_NOT_FOUND)]
        self.ctx.state.admin_targets.set(sender.chat_id, AdminTarget(account_id=customer.id, display_name=customer.display_name))
        return [_t(M.target_set(customer))]

    async def _cmd_clear_target(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if self.ctx.state.admin_targets.pop(sender.chat_id) is None:
            return [_t(M.NO_TARGET)]
        return [_t(M.TARGET_CLEARED)]

    async def _cmd_cancel(self, sender: Sender, account: Account, intent: Intent) -> list[Reply]:
        if self.ctx.state.pending_approvals.pop(sender.chat_id) is None:
            return [_t(M.NO_PENDING_APPROVAL)]
        return [_t(M.APPROVAL_CANCELLED)]

    # ---- slip decisions ----

    async def _start_approval(self, sender: Sender, payload: dict) -> list[Reply]:
        slip_id = payload.get("slip_id")
        if not isinstance(slip_id, int):
            return []
        async with self.ctx.sessionmaker() as session:
            slip = await SlipRepo(session).get(slip_id)
        if slip is None:
            return [_t(M.SLIP_NOT_FOUND)]
        if slip.status != SlipStatus.pending.value:
            return [_t(M.SLIP_ALREADY_PROCESSED)]
        self.ctx.state.pending_approvals.set(sender.chat_id, PendingApproval(slip_id=slip_id, admin_line_id=sender.line_user_id))
        return [_t(M.approval_prompt(slip_id))]

    async def _approve_pending(self, sender: Sender, pending: PendingApproval, amount_text: str, admin: Account) -> list[Reply]:
        amount = parse_amount(amount_text)
        if amount is None:
            return [_t(M.approval_prompt(pending.slip_id))]
        self.ctx.state.pending_approvals.pop(sender.chat_id)
        async with self.ctx.sessionmaker() as session:
            service = SlipService(session)
            try:
                outcome = await service.approve(pending.slip_id, amount=amount)
            except SlipNotFound:
                return [_t(M.SLIP_NOT_FOUND)]
            except AlreadyProcessed:
                return [_t(M.SLIP_ALREADY_PROCESSED)]
            except ValidationError:
                return [_t(M.approval_prompt(pending.slip_id))]
            slip = await service.slips.get(pending.slip_id)
            owner = await CreditService(session).get(slip.account_id)
        log.info("[bot] slip %s approved from chat by %s", pending.slip_id, admin.line_user_id)
        return [_t(M.slip_approved_for_admin(outcome, owner))]

    async def _reject_slip(self, sender: Sender, admin: Account, payload: dict) -> list[Reply]:
        slip_id = payload.get("slip_id")
        if not isinstance(slip_id, int):
            return []
        async with self.ctx.sessionmaker() as session:
            try:
                await SlipService(session).reject(slip_id, reason=f"ปฏิเสธโดย {admin.display_name}")
            except SlipNotFound:
                return [_t(M.SLIP_NOT_FOUND)]
            except AlreadyProcessed:
                return [_t(M.SLIP_ALREADY_PROCESSED)]
        return [_t(M.slip_rejected_for_admin(slip_id))]

    async def _request_manual_approval(self, account: Account, payload: dict) -> list[Reply]:
        async with self.ctx.sessionmaker() as session:
            await SlipService(session).request_review(
                account.id,
                reason="ผู้ใช้ขอให้แอดมินตรวจสอบ",
                image_url=payload.get("image_url"),
            )
        return [_t(M.SLIP_REVIEW_QUEUED)]

    # ---- plumbing ----

    async def _account(self, sender: Sender) -> tuple[Account, bool]:
        """The sender's account (created on first contact) and whether they act as admin."""
        async with self.ctx.sessionmaker() as session:
            account = await CreditService(session).get_or_create(sender.line_user_id, sender.display_name)
            in_admin_group = await self._is_admin_group(sender, session)
            await session.commit()
        return account, account.is_admin or in_admin_group

    async def _is_admin_group(self, sender: Sender, session: AsyncSession | None = None) -> bool:
        if not sender.is_group:
            return False
        if session is None:
            async with self.ctx.sessionmaker() as s:
                group_id = await SettingsRepo(s).get_admin_group_id()
        else:
            group_id = await SettingsRepo(session).get_admin_group_id()
        return bool(group_id) and group_id == sender.chat_id

    async def _sender(self, event: dict) -> Sender | None:
        source = event.get("source") or {}
        user_id = source.get("userId")
        if not user_id:
            return None
        chat_id = source.get("groupId") or source.get("roomId") or user_id
        display_name = ""
        try:
            profile = await self.ctx.line.get_profile(user_id)
            display_name = profile.get("displayName") or ""
        except LineApiError as e:
            log.debug("[bot] profile lookup failed for %s: %s", user_id, e)
        return Sender(line_user_id=user_id, display_name=display_name, chat_id=chat_id, is_group=chat_id != user_id)

    async def _send(self, reply_token: str | None, sender: Sender, replies: list[Reply]) -> None:
        try:
            if reply_token:
                await self.ctx.line.reply(reply_token, replies)
            else:
                await self.ctx.line.push(sender.chat_id, replies)
        except LineApiError as e:
            log.warning("[bot] reply to %s failed: %s", sender.chat_id, e)
