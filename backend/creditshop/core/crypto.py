from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from creditshop.core import json
from creditshop.core.config import settings

# Prefix marks a stored payload as Fernet ciphertext so plain rows written
# before a key was configured still decode.
_ENC_PREFIX = "enc:"


def _fernet() -> Fernet | None:
    if not settings.FERNET_KEY:
        return None
    return Fernet(settings.FERNET_KEY.encode("utf-8"))


def seal_payload(payload: dict[str, str]) -> dict:
    """Serialize a stock payload for storage."""
    f = _fernet()
    if f is None:
        return dict(payload)
    token = f.encrypt(json.dumps(payload).encode("utf-8")).decode("utf-8")
    return {"_sealed": _ENC_PREFIX + token}


def open_payload(stored: dict | None) -> dict[str, str]:
    if not stored:
        return {}
    sealed = stored.get("_sealed")
    if not isinstance(sealed, str) or not sealed.startswith(_ENC_PREFIX):
        return {str(k): "" if v is None else str(v) for k, v in stored.items()}
    f = _fernet()
    if f is None:
        raise ValueError("Stock payload is encrypted but FERNET_KEY is not configured")
    try:
        raw = f.decrypt(sealed[len(_ENC_PREFIX):].encode("utf-8"))
    except InvalidToken as e:
        raise ValueError("Stock payload cannot be decrypted with the configured FERNET_KEY") from e
    data = json.loads(raw)
    return {str(k): "" if v is None else str(v) for k, v in data.items()}
