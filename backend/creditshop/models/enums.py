from __future__ import annotations

import enum


class LedgerEntryType(str, enum.Enum):
    purchase = "purchase"
    topup = "topup"
    adjustment = "adjustment"
    refund = "refund"

    @classmethod
    def values(cls) -> list[str]:
        return [e.value for e in cls]


class StockStatus(str, enum.Enum):
    available = "available"
    reserved = "reserved"
    sold = "sold"

    @classmethod
    def values(cls) -> list[str]:
        return [e.value for e in cls]


class SlipStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"

    @classmethod
    def values(cls) -> list[str]:
        return [e.value for e in cls]


class JobStatus(str, enum.Enum):
    queued = "queued"
    running = "running"
    done = "done"
    failed = "failed"


class JobType(str, enum.Enum):
    push_message = "push_message"
