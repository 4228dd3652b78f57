"""
Exchange-rate resolution on top of :class:`RateCacheStore`.

``resolve_many`` answers "how much of ``target`` is one unit of each
source?" with at most one network call.  Fresh factors come from the
cache.  For the rest, the server is asked for every rate *from* the target
currency (``GET /exchange-rates?base=<TARGET>``) and each missing factor is
derived by inversion::

    source -> target  =  1 / (target -> source)

Derived factors are written back to the cache in one batch.  Sources the
server has no usable rate for are left out of the result; a failed fetch
returns whatever the cache could serve.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote

from pydantic import ValidationError

from ..errors import RateUnavailableError, SubduxClientError
from ..models import ExchangeRateInfo
from ..telemetry import RATE_FETCHES
from .rate_cache import RateCacheStore, RateEntry, normalize_code

if TYPE_CHECKING:
    from ..clients.http_gateway import RequestGateway


logger = logging.getLogger(__name__)


@dataclass
class ConversionTotal:
    """Sum of several amounts expressed in one currency."""

    currency: str
    total: float = 0.0
    unresolved: List[str] = field(default_factory=list)


class RateResolver:
    def __init__(self, cache: RateCacheStore, gateway: "RequestGateway") -> None:
        self.cache = cache
        self.gateway = gateway

    async def resolve_many(self, sources: Iterable[str], target: str) -> Dict[str, float]:
        """Map each source currency to its factor into ``target``.

        Sources equal to ``target`` are dropped (the factor is 1).  Never
        raises for missing or unreachable rates; unresolved sources are
        simply absent from the mapping.
        """
        normalized_target = normalize_code(target)
        wanted: List[str] = []
        for source in sources:
            code = normalize_code(source)
            if code and code != normalized_target and code not in wanted:
                wanted.append(code)
        if not wanted:
            return {}

        rates: Dict[str, float] = {}
        missing: List[str] = []
        for code in wanted:
            cached = self.cache.get(code, normalized_target)
            if cached is not None:
                rates[code] = cached
            else:
                missing.append(code)
        if not missing:
            return rates

        outbound = await self._fetch_outbound(normalized_target)
        if outbound is None:
            return rates

        derived: List[RateEntry] = []
        for code in missing:
            target_to_source = outbound.get(code)
            if not target_to_source or target_to_source <= 0:
                logger.debug("No %s->%s rate available; leaving %s unresolved", normalized_target, code, code)
                continue
            source_to_target = 1 / target_to_source
            if not math.isfinite(source_to_target) or source_to_target <= 0:
                logger.warning("Unusable %s->%s rate %r; leaving %s unresolved", normalized_target, code, target_to_source, code)
                continue
            rates[code] = source_to_target
            derived.append((code, normalized_target, source_to_target))

        self.cache.set_many(derived)
        return rates

    async def _fetch_outbound(self, base: str) -> Optional[Dict[str, float]]:
        """Return ``{currency: rate}`` for every rate from ``base``, or ``None`` on failure."""
        RATE_FETCHES.labels(kind="outbound").inc()
        try:
            payload = await self.gateway.get(f"/exchange-rates?base={quote(base)}")
        except SubduxClientError as exc:
            logger.warning("Could not fetch exchange rates for base %s: %s", base, exc)
            return None

        outbound: Dict[str, float] = {}
        if not isinstance(payload, list):
            logger.warning("Unexpected exchange-rate payload for base %s: %s", base, type(payload).__name__)
            return outbound
        for item in payload:
            try:
                info = ExchangeRateInfo.model_validate(item)
            except ValidationError:
                logger.debug("Skipping malformed exchange-rate item: %r", item)
                continue
            outbound[info.target_currency] = info.rate
        return outbound

    async def resolve_one(self, base: str, target: str) -> float:
        """Return the factor for ``base -> target``, fetching the pair if needed.

        Raises :class:`~subdux_client.errors.ApiError` when the request fails
        and :class:`RateUnavailableError` when the server's rate is unusable.
        """
        normalized_base = normalize_code(base)
        normalized_target = normalize_code(target)
        if normalized_base == normalized_target:
            return 1.0

        cached = self.cache.get(normalized_base, normalized_target)
        if cached is not None:
            return cached

        RATE_FETCHES.labels(kind="pair").inc()
        payload = await self.gateway.get(
            f"/exchange-rates/{quote(normalized_base)}/{quote(normalized_target)}"
        )
        rate = payload.get("rate") if isinstance(payload, dict) else None
        usable = isinstance(rate, (int, float)) and not isinstance(rate, bool)
        if not usable or not math.isfinite(rate) or rate <= 0:
            raise RateUnavailableError(
                f"No usable exchange rate for {normalized_base}->{normalized_target}"
            )
        self.cache.set(normalized_base, normalized_target, float(rate))
        return float(rate)

    async def convert(self, amount: float, base: str, target: str) -> float:
        return amount * await self.resolve_one(base, target)

    async def convert_many(self, amounts: Mapping[str, float], target: str) -> ConversionTotal:
        """Total amounts held in several currencies, expressed in ``target``."""
        normalized_target = normalize_code(target)
        rates = await self.resolve_many(amounts.keys(), normalized_target)
        result = ConversionTotal(currency=normalized_target)
        for currency, amount in amounts.items():
            code = normalize_code(currency)
            if code == normalized_target:
                result.total += amount
            elif code in rates:
                result.total += amount * rates[code]
            elif code not in result.unresolved:
                result.unresolved.append(code)
        return result
