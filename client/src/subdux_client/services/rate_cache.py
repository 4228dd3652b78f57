"""
Exchange-rate cache.

Conversion factors are cached per ordered currency pair with an absolute
expiry so repeated currency-aware renders do not go back to the network.
The whole cache is one JSON document stored under a single storage key,
read and written as a unit::

    {"rates": {"EUR->USD": {"expiresAt": 1700000000000, "rate": 1.1}}}

``expiresAt`` is wall-clock milliseconds.  Expired entries are removed
lazily when they are read; there is no background sweep.  A missing or
corrupt document behaves as an empty cache.
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from ..config import DEFAULT_RATE_CACHE_TTL
from ..telemetry import RATE_CACHE_LOOKUPS
from .storage import KeyValueStorage


logger = logging.getLogger(__name__)

EXCHANGE_RATE_CACHE_KEY = "exchangeRateCacheV1"

#: ``(base, target, rate)``
RateEntry = Tuple[str, str, float]


def normalize_code(code: str) -> str:
    return code.strip().upper()


def cache_key(base: str, target: str) -> str:
    return f"{normalize_code(base)}->{normalize_code(target)}"


def _valid_rate(rate: Any) -> bool:
    return (
        isinstance(rate, (int, float))
        and not isinstance(rate, bool)
        and math.isfinite(rate)
        and rate > 0
    )


class RateCacheStore:
    """TTL-bound mapping from ``(base, target)`` to a conversion factor."""

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        ttl: float = DEFAULT_RATE_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        storage_key: str = EXCHANGE_RATE_CACHE_KEY,
    ) -> None:
        """
        Args:
            storage: Backend holding the cache document.
            ttl: Seconds an entry stays fresh after it is written.
            clock: Returns the current wall-clock time in seconds.
            storage_key: Key of the cache document in ``storage``.
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.storage = storage
        self.ttl = ttl
        self.clock = clock
        self.storage_key = storage_key

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _read(self) -> Dict[str, Any]:
        raw = self.storage.get(self.storage_key)
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("Exchange-rate cache is corrupt; starting empty")
            return {}
        rates = parsed.get("rates") if isinstance(parsed, dict) else None
        if not isinstance(rates, dict):
            logger.warning("Exchange-rate cache has an unexpected shape; starting empty")
            return {}
        return rates

    def _write(self, rates: Dict[str, Any]) -> None:
        self.storage.set(self.storage_key, json.dumps({"rates": rates}))

    def get(self, base: str, target: str) -> Optional[float]:
        """Return the cached factor for ``base -> target`` if still fresh.

        Identical currencies always convert at 1 and never touch storage.
        """
        if normalize_code(base) == normalize_code(target):
            return 1.0
        rates = self._read()
        key = cache_key(base, target)
        entry = rates.get(key)
        if entry is None:
            RATE_CACHE_LOOKUPS.labels(result="miss").inc()
            return None

        expires_at = entry.get("expiresAt") if isinstance(entry, dict) else None
        rate = entry.get("rate") if isinstance(entry, dict) else None
        if not _valid_rate(rate) or not isinstance(expires_at, (int, float)):
            logger.warning("Dropping malformed cache entry %s", key)
            del rates[key]
            self._write(rates)
            RATE_CACHE_LOOKUPS.labels(result="miss").inc()
            return None

        if expires_at <= self._now_ms():
            del rates[key]
            self._write(rates)
            RATE_CACHE_LOOKUPS.labels(result="expired").inc()
            return None

        RATE_CACHE_LOOKUPS.labels(result="hit").inc()
        return float(rate)

    def set(self, base: str, target: str, rate: float) -> None:
        self.set_many([(base, target, rate)])

    def set_many(self, entries: Iterable[RateEntry]) -> None:
        """Write several factors with one shared expiry and a single write.

        Identity pairs are skipped.  Raises ``ValueError`` for a factor that
        is not a positive finite number; nothing is written in that case.
        """
        pending: Dict[str, float] = {}
        for base, target, rate in entries:
            if not _valid_rate(rate):
                raise ValueError(f"invalid exchange rate for {cache_key(base, target)}: {rate!r}")
            if normalize_code(base) == normalize_code(target):
                continue
            pending[cache_key(base, target)] = float(rate)
        if not pending:
            return

        rates = self._read()
        expires_at = self._now_ms() + int(self.ttl * 1000)
        for key, rate in pending.items():
            rates[key] = {"expiresAt": expires_at, "rate": rate}
        self._write(rates)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        rates = self._read()
        now = self._now_ms()
        stale = [
            key
            for key, entry in rates.items()
            if not isinstance(entry, dict)
            or not isinstance(entry.get("expiresAt"), (int, float))
            or entry["expiresAt"] <= now
        ]
        for key in stale:
            del rates[key]
        if stale:
            self._write(rates)
        return len(stale)

    def clear(self) -> None:
        self.storage.delete(self.storage_key)
