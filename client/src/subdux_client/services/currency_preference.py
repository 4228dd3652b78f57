"""Preferred display currency, kept locally and synced with the server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..errors import SubduxClientError
from ..models import CurrencyPreference
from .rate_cache import normalize_code
from .storage import KeyValueStorage

if TYPE_CHECKING:
    from ..clients.http_gateway import RequestGateway


logger = logging.getLogger(__name__)

DEFAULT_CURRENCY_KEY = "defaultCurrency"


class CurrencyPreferenceService:
    def __init__(self, storage: KeyValueStorage, gateway: "RequestGateway") -> None:
        self.storage = storage
        self.gateway = gateway

    def get_default_currency(self, fallback: str = "USD") -> str:
        return self.storage.get(DEFAULT_CURRENCY_KEY) or fallback

    def set_default_currency(self, currency: str) -> None:
        self.storage.set(DEFAULT_CURRENCY_KEY, normalize_code(currency))

    async def sync(self) -> Optional[str]:
        """Adopt the server-side preference; keeps the local one on failure."""
        try:
            payload = await self.gateway.get("/preferences/currency")
        except SubduxClientError as exc:
            logger.warning("Could not load currency preference: %s", exc)
            return None
        preference = CurrencyPreference.model_validate(payload if isinstance(payload, dict) else {})
        if not preference.preferred_currency:
            return None
        self.set_default_currency(preference.preferred_currency)
        return self.get_default_currency()

    async def update(self, currency: str) -> str:
        code = normalize_code(currency)
        await self.gateway.put("/preferences/currency", {"preferred_currency": code})
        self.set_default_currency(code)
        return code
