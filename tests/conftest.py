"""Shared fixtures.

``fake_api`` starts the fake backend from ``tests/helpers/fake_api.py`` on
a random local port; ``gateway`` is a request gateway pointed at it with a
memory-backed credential store and a recording event bus.
"""

from __future__ import annotations

import pytest
from aiohttp.test_utils import TestServer

from subdux_client.clients import CredentialStore, HttpTransport, RequestGateway
from subdux_client.models import User
from subdux_client.services import MemoryStorage
from tests.helpers.fake_api import USER, FakeApi
from tests.helpers.fake_bus import FakeBus


class FakeClock:
    """Settable wall clock, in seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def credentials(storage) -> CredentialStore:
    return CredentialStore(storage)


@pytest.fixture
def user() -> User:
    return User.model_validate(USER)


@pytest.fixture
async def fake_api():
    api = FakeApi()
    server = TestServer(api.app())
    await server.start_server()
    api.base_url = str(server.make_url("/api"))
    yield api
    await server.close()


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
async def gateway(fake_api, credentials, bus):
    transport = HttpTransport(fake_api.base_url, retries=1)
    gw = RequestGateway(transport, credentials, event_bus=bus)
    yield gw
    await gw.close()
