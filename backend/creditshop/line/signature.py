from __future__ import annotations

import base64
import hashlib
import hmac


def compute_signature(channel_secret: str, body: bytes) -> str:
    mac = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(mac).decode("utf-8")


def check_signature(header_signature: str | None, channel_secret: str, body: bytes) -> bool:
    """Compare X-Line-Signature against the HMAC-SHA256 of the raw body."""
    if not header_signature or not channel_secret:
        return False
    return hmac.compare_digest(header_signature, compute_signature(channel_secret, body))
