"""
Wiring for the client components.

:class:`ClientContext` builds one storage backend and hangs every store and
service off it, so the credential pair, the rate cache and the currency
preference share the same durable storage the way the web client shares
one browser profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .clients import ApiKeyProvider, CredentialStore, HttpTransport, RefreshCoordinator, RequestGateway
from .config import ClientSettings
from .secrets_manager import API_KEY_ENV, BaseSecretsManager, EnvFileSecretsManager, bootstrap_session
from .services import (
    AuthService,
    CurrencyPreferenceService,
    EventBus,
    KeyValueStorage,
    RateCacheStore,
    RateResolver,
    build_storage,
)


logger = logging.getLogger(__name__)


@dataclass
class ClientContext:
    settings: ClientSettings
    storage: KeyValueStorage
    credentials: CredentialStore
    event_bus: EventBus
    gateway: RequestGateway
    rate_cache: RateCacheStore
    rates: RateResolver
    auth: AuthService
    preferences: CurrencyPreferenceService

    @classmethod
    def create(
        cls,
        settings: Optional[ClientSettings] = None,
        *,
        storage: Optional[KeyValueStorage] = None,
        secrets: Optional[BaseSecretsManager] = None,
    ) -> "ClientContext":
        settings = settings or ClientSettings.from_env()
        if storage is None:
            storage = build_storage(settings)
        else:
            storage.init()
        credentials = CredentialStore(storage)
        secrets = secrets or EnvFileSecretsManager()
        bootstrap_session(credentials, secrets)

        transport = HttpTransport(
            settings.api_base,
            timeout=settings.http_timeout,
            retries=settings.transport_retries,
        )
        api_key = secrets.get_secret(API_KEY_ENV)
        event_bus = EventBus()
        gateway = RequestGateway(
            transport,
            credentials,
            coordinator=RefreshCoordinator(credentials, transport, refresh_path=settings.refresh_path),
            auth_provider=ApiKeyProvider(api_key) if api_key else None,
            event_bus=event_bus,
            refresh_path=settings.refresh_path,
            login_path=settings.login_path,
        )
        if api_key:
            logger.info("Authenticating with API key from %s", API_KEY_ENV)
        rate_cache = RateCacheStore(storage, ttl=settings.rate_cache_ttl)
        return cls(
            settings=settings,
            storage=storage,
            credentials=credentials,
            event_bus=event_bus,
            gateway=gateway,
            rate_cache=rate_cache,
            rates=RateResolver(rate_cache, gateway),
            auth=AuthService(gateway, credentials),
            preferences=CurrencyPreferenceService(storage, gateway),
        )

    async def close(self) -> None:
        await self.gateway.close()

    async def __aenter__(self) -> "ClientContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
