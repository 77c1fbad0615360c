from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from creditshop.core import json
from creditshop.core.config import settings
from creditshop.core.errors import VerificationFailed

log = logging.getLogger(__name__)

QR_INFO_PATH = "/api/verify-slip/qr-code/info"
QR_IMAGE_PATH = "/api/verify-slip/qr-image/info"

VALID_CODES = {"200000", "200001", "200200"}

# Human readable reasons for the verifier's rejection codes.
ERROR_MESSAGES = {
    "200401": "บัญชีผู้รับไม่ถูกต้อง",
    "200402": "ยอดเงินไม่ตรงตามเงื่อนไข",
    "200403": "วันที่โอนไม่ตรงตามเงื่อนไข",
    "200404": "ไม่พบข้อมูลสลิปในระบบธนาคาร",
    "200500": "สลิปเสียหรือสลิปปลอม",
    "200501": "สลิปนี้ถูกใช้งานแล้ว",
}


@dataclass(frozen=True)
class SlipVerdict:
    ok: bool
    code: str
    message: str
    trans_ref: str | None = None
    amount: Decimal | None = None
    sender_name: str | None = None
    receiver_name: str | None = None
    sending_bank: str | None = None
    receiving_bank: str | None = None
    transferred_at: datetime | None = None
    raw: dict = field(default_factory=dict)

    @property
    def reason(self) -> str:
        return ERROR_MESSAGES.get(self.code, self.message or "ตรวจสอบสลิปไม่สำเร็จ")


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_amount(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_verdict(body: dict) -> SlipVerdict:
    code = str(body.get("code") or "")
    message = str(body.get("message") or "")
    data = body.get("data") or {}
    receiver = data.get("receiver") or {}
    sender = data.get("sender") or {}
    verdict = SlipVerdict(
        ok=code in VALID_CODES,
        code=code,
        message=message,
        trans_ref=data.get("transRef") or None,
        amount=_parse_amount(data.get("amount")),
        sender_name=((sender.get("account") or {}).get("name")) or None,
        receiver_name=((receiver.get("account") or {}).get("name")) or None,
        sending_bank=((sender.get("bank") or {}).get("name")) or None,
        receiving_bank=((receiver.get("bank") or {}).get("name")) or None,
        transferred_at=_parse_datetime(data.get("dateTime")),
        raw=body,
    )
    if verdict.ok and (not verdict.trans_ref or verdict.amount is None or verdict.amount <= 0):
        # A "valid" answer without a reference or amount cannot be credited.
        return SlipVerdict(ok=False, code=code, message="incomplete verification data", raw=body)
    return verdict


class SlipVerifier:
    """Slip2Go compatible slip verification client.

    Any transport problem, timeout or malformed answer raises
    VerificationFailed; callers route the slip to manual review.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.SLIP_API_KEY
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.SLIP_API_BASE_URL,
            timeout=httpx.Timeout(timeout or settings.SLIP_TIMEOUT_SEC),
            headers={"Authorization": f"Bearer {self.api_key or ''}"},
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    @staticmethod
    def receiver_condition() -> dict | None:
        cond: dict[str, str] = {}
        if settings.SLIP_RECEIVER_NAME_TH:
            cond["accountNameTH"] = settings.SLIP_RECEIVER_NAME_TH
        if settings.SLIP_RECEIVER_NAME_EN:
            cond["accountNameEN"] = settings.SLIP_RECEIVER_NAME_EN
        if settings.SLIP_ACCOUNT_NUMBER:
            cond["accountNumber"] = settings.SLIP_ACCOUNT_NUMBER
        if not cond:
            return None
        if settings.SLIP_RECEIVER_BANK_ID:
            cond["accountType"] = settings.SLIP_RECEIVER_BANK_ID
        return {"checkReceiver": [cond]}

    async def _post(self, path: str, **kwargs) -> SlipVerdict:
        if not self.api_key:
            raise VerificationFailed("Slip verification is not configured")
        try:
            resp = await self._client.post(path, **kwargs)
        except httpx.TimeoutException as e:
            log.warning("[slip-verifier] timeout on %s", path)
            raise VerificationFailed("Slip verification timed out") from e
        except httpx.HTTPError as e:
            log.warning("[slip-verifier] transport error on %s: %s", path, e)
            raise VerificationFailed("Slip verification unavailable") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise VerificationFailed(f"Slip verification returned HTTP {resp.status_code} without JSON") from e
        if not isinstance(body, dict) or "code" not in body:
            raise VerificationFailed(f"Slip verification returned HTTP {resp.status_code}")
        # Rejections (4xx with a code) are answers, not failures.
        if resp.status_code >= 500:
            raise VerificationFailed(f"Slip verification returned HTTP {resp.status_code}")

        verdict = parse_verdict(body)
        log.info("[slip-verifier] code=%s ok=%s trans_ref=%s amount=%s", verdict.code, verdict.ok, verdict.trans_ref, verdict.amount)
        return verdict

    async def verify_qr(self, qr_payload: str) -> SlipVerdict:
        payload: dict[str, Any] = {"qrCode": qr_payload}
        cond = self.receiver_condition()
        if cond:
            payload["checkCondition"] = cond
        return await self._post(QR_INFO_PATH, json={"payload": payload})

    async def verify_image(self, image: bytes, filename: str = "slip.jpg") -> SlipVerdict:
        data = {}
        cond = self.receiver_condition()
        if cond:
            data["payload"] = json.dumps({"checkCondition": cond})
        return await self._post(QR_IMAGE_PATH, files={"file": (filename, image, "image/jpeg")}, data=data)
