from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from creditshop.core.config import settings

log = logging.getLogger(__name__)

MAX_MESSAGES_PER_CALL = 5


class LineApiError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None, payload: Any | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


def as_messages(messages: list[dict] | list[str]) -> list[dict]:
    return [{"type": "text", "text": m} if isinstance(m, str) else m for m in messages]


class LineMessagingClient:
    """Thin async client for the LINE Messaging API."""

    def __init__(
        self,
        access_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        token = access_token if access_token is not None else settings.LINE_CHANNEL_ACCESS_TOKEN
        t = httpx.Timeout(timeout or settings.LINE_API_TIMEOUT_SEC)
        headers = {"Authorization": f"Bearer {token}"}
        self._client = httpx.AsyncClient(base_url=settings.LINE_API_BASE_URL, timeout=t, headers=headers, transport=transport)
        self._data = httpx.AsyncClient(base_url=settings.LINE_DATA_API_BASE_URL, timeout=t, headers=headers, transport=transport)

    async def aclose(self):
        await self._client.aclose()
        await self._data.aclose()

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        # Simple retry on 429 and transient 5xx.
        max_tries = 3
        for attempt in range(1, max_tries + 1):
            resp = await client.request(method, url, **kwargs)
            if resp.status_code == 429 or resp.status_code >= 500:
                if attempt == max_tries:
                    break
                await asyncio.sleep(min(2 ** (attempt - 1), 5))
                continue
            return resp
        raise LineApiError(f"LINE API request failed after retries: {method} {url}", resp.status_code, resp.text)

    async def reply(self, reply_token: str, messages: list[dict] | list[str]) -> None:
        msgs = as_messages(messages)[:MAX_MESSAGES_PER_CALL]
        resp = await self._request(self._client, "POST", "/v2/bot/message/reply", json={"replyToken": reply_token, "messages": msgs})
        if resp.status_code != 200:
            raise LineApiError("LINE reply failed", resp.status_code, resp.text)

    async def push(self, to: str, messages: list[dict] | list[str]) -> None:
        msgs = as_messages(messages)
        for i in range(0, len(msgs), MAX_MESSAGES_PER_CALL):
            chunk = msgs[i:i + MAX_MESSAGES_PER_CALL]
            resp = await self._request(self._client, "POST", "/v2/bot/message/push", json={"to": to, "messages": chunk})
            if resp.status_code != 200:
                raise LineApiError("LINE push failed", resp.status_code, resp.text)

    async def get_profile(self, user_id: str) -> dict:
        resp = await self._request(self._client, "GET", f"/v2/bot/profile/{user_id}")
        if resp.status_code != 200:
            raise LineApiError("LINE profile lookup failed", resp.status_code, resp.text)
        return resp.json()

    async def get_content(self, message_id: str) -> bytes:
        resp = await self._request(self._data, "GET", f"/v2/bot/message/{message_id}/content")
        if resp.status_code != 200:
            raise LineApiError("LINE content download failed", resp.status_code, resp.text)
        return resp.content

    async def show_loading(self, chat_id: str, seconds: int = 20) -> None:
        try:
            await self._request(self._client, "POST", "/v2/bot/chat/loading/start", json={"chatId": chat_id, "loadingSeconds": seconds})
        except (httpx.HTTPError, LineApiError) as e:
            log.debug("[line] loading indicator failed: %s", e)
