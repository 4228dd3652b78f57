"""Service layer for the client.

This package exposes the storage backends, the exchange-rate cache and
resolver, the session event bus and the account-level services built on
top of the request gateway.
"""

from .auth_service import AuthService  # noqa: F401
from .currency_preference import CurrencyPreferenceService  # noqa: F401
from .event_bus import SESSION_EXPIRED, EventBus  # noqa: F401
from .rate_cache import RateCacheStore  # noqa: F401
from .rate_resolver import ConversionTotal, RateResolver  # noqa: F401
from .storage import JsonFileStorage, KeyValueStorage, MemoryStorage, RedisStorage, build_storage  # noqa: F401
