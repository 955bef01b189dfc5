# engine/idempotency.py
"""
Webhook dedupe claims and the daily trade counter.

Both must be atomic in the backing store: Redis SET NX EX for the claim and
INCR for the counter. InMemoryStore is for local replays and tests only.
"""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import redis

from .models import Signal

log = logging.getLogger(__name__)

DEDUPE_PREFIX = "dedupe:webhook"
DAILY_TRADES_PREFIX = "metrics:daily_trades"


def payload_hash(payload: Any) -> str:
    """First 32 hex chars of SHA-256 over canonical JSON (sorted keys, compact)."""
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def dedupe_key(signal: Signal, payload: Any) -> str:
    return (
        f"{DEDUPE_PREFIX}:{signal.source}:{signal.ticker}:{signal.direction}:"
        f"{signal.timestamp}:{payload_hash(payload)}"
    )


def utc_day_key(day: Optional[date] = None) -> str:
    day = day or datetime.now(timezone.utc).date()
    return day.isoformat()


def daily_trades_key(day: str) -> str:
    return f"{DAILY_TRADES_PREFIX}:{day}"


def seconds_until_next_utc_day(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(1, int((tomorrow - now).total_seconds()))


class IdempotencyStore(Protocol):
    def claim(self, key: str, owner: str, ttl: int) -> bool: ...

    def owner_of(self, key: str) -> Optional[str]: ...

    def get_daily_trade_count(self, day: str) -> int: ...

    def increment_daily_trade_count(self, day: str) -> int: ...


class InMemoryStore:
    """Process-local store. Claims expire lazily on read."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claims: Dict[str, Tuple[str, float]] = {}
        self._daily: Dict[str, int] = {}

    def _live_owner(self, key: str, now: float) -> Optional[str]:
        entry = self._claims.get(key)
        if entry is None:
            return None
        owner, expires_at = entry
        if expires_at <= now:
            del self._claims[key]
            return None
        return owner

    def claim(self, key: str, owner: str, ttl: int) -> bool:
        now = time.monotonic()
        with self._lock:
            if self._live_owner(key, now) is not None:
                return False
            self._claims[key] = (owner, now + ttl)
            return True

    def owner_of(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live_owner(key, time.monotonic())

    def get_daily_trade_count(self, day: str) -> int:
        with self._lock:
            return self._daily.get(day, 0)

    def increment_daily_trade_count(self, day: str) -> int:
        with self._lock:
            self._daily[day] = self._daily.get(day, 0) + 1
            return self._daily[day]


class RedisStore:
    """Redis-backed store shared by every worker processing webhooks."""

    def __init__(self, client: "redis.Redis[Any]"):
        self.client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 2.0) -> "RedisStore":
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=socket_timeout)
        log.info("Idempotency store: redis at %s", url)
        return cls(client)

    def claim(self, key: str, owner: str, ttl: int) -> bool:
        return bool(self.client.set(key, owner, nx=True, ex=int(ttl)))

    def owner_of(self, key: str) -> Optional[str]:
        value = self.client.get(key)
        return str(value) if value is not None else None

    def get_daily_trade_count(self, day: str) -> int:
        value = self.client.get(daily_trades_key(day))
        try:
            return int(value) if value is not None else 0
        except (TypeError, ValueError):
            return 0

    def increment_daily_trade_count(self, day: str) -> int:
        key = daily_trades_key(day)
        count = int(self.client.incr(key))
        if count == 1:
            self.client.expire(key, seconds_until_next_utc_day())
        return count


def context_trade_count(context: Optional[Mapping[str, Any]]) -> Optional[int]:
    """dailyTradeCount / daily_trade_count from a caller-supplied context."""
    if not context:
        return None
    for name in ("daily_trade_count", "dailyTradeCount"):
        value = context.get(name)
        if value is None:
            continue
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return None
    return None
