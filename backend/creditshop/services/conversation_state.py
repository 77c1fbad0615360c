"""Short-lived per-chat conversation state.

Kept in process memory: it only remembers what an admin is in the middle of
(typing an approval amount, which customer they are acting for) and is safe
to lose on restart.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class ExpiringStore(Generic[K, V]):
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = float(ttl_seconds)
        self._clock = clock
        self._items: dict[K, _Entry[V]] = {}

    def set(self, key: K, value: V) -> None:
        self._items[key] = _Entry(value=value, expires_at=self._clock() + self.ttl)

    def get(self, key: K) -> V | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._items.pop(key, None)
            return None
        return entry.value

    def pop(self, key: K) -> V | None:
        value = self.get(key)
        self._items.pop(key, None)
        return value

    def sweep(self) -> int:
        now = self._clock()
        dead = [k for k, e in self._items.items() if e.expires_at <= now]
        for k in dead:
            del self._items[k]
        return len(dead)

    def __len__(self) -> int:
        return len(self._items)


@dataclass(frozen=True)
class PendingApproval:
    slip_id: int
    admin_line_id: str


@dataclass(frozen=True)
class AdminTarget:
    account_id: int
    display_name: str


class ConversationState:
    """The two stores the chat layer uses, keyed by admin chat (group or user id)."""

    def __init__(self, approval_ttl_min: float, target_ttl_min: float, clock: Callable[[], float] = time.monotonic):
        self.pending_approvals: ExpiringStore[str, PendingApproval] = ExpiringStore(approval_ttl_min * 60, clock)
        self.admin_targets: ExpiringStore[str, AdminTarget] = ExpiringStore(target_ttl_min * 60, clock)

    def sweep(self) -> int:
        return self.pending_approvals.sweep() + self.admin_targets.sweep()
