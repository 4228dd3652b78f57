"""Tests for single-flight credential refresh.

The transport is replaced with a stub whose replies are released by the
test, so the overlap between callers is fully deterministic.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

import pytest

from subdux_client.clients import RefreshCoordinator
from subdux_client.clients.transport import RawResponse
from subdux_client.errors import TransportError
from tests.helpers.fake_api import USER


class GatedTransport:
    """Transport stub that blocks every send until ``release`` is set."""

    def __init__(self, response: Optional[RawResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response or RawResponse(
            status=200,
            body={"access_token": "access-new", "refresh_token": "refresh-new", "user": USER},
        )
        self.error = error
        self.release = asyncio.Event()
        self.sent: List[Any] = []

    async def send(self, method, path, *, headers=None, json_body=None, form_factory=None) -> RawResponse:
        self.sent.append((method, path, json_body))
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.response


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(credentials, user) -> None:
    credentials.set_session("access-old", user, "refresh-old")
    transport = GatedTransport()
    coordinator = RefreshCoordinator(credentials, transport)

    tasks = [asyncio.create_task(coordinator.refresh()) for _ in range(5)]
    await _settle()
    assert coordinator.in_flight is True
    assert len(transport.sent) == 1

    transport.release.set()
    results = await asyncio.gather(*tasks)
    assert results == [True] * 5
    assert len(transport.sent) == 1
    assert transport.sent[0] == ("POST", "/auth/refresh", {"refresh_token": "refresh-old"})
    assert credentials.get_access() == "access-new"
    assert credentials.get_refresh() == "refresh-new"
    assert coordinator.in_flight is False


@pytest.mark.asyncio
async def test_next_call_after_settlement_starts_new_attempt(credentials, user) -> None:
    credentials.set_session("access-old", user, "refresh-old")
    transport = GatedTransport()
    transport.release.set()
    coordinator = RefreshCoordinator(credentials, transport)

    assert await coordinator.refresh() is True
    assert await coordinator.refresh() is True
    assert len(transport.sent) == 2
    assert transport.sent[1][2] == {"refresh_token": "refresh-new"}


@pytest.mark.asyncio
async def test_shared_failure_is_seen_by_every_caller(credentials, user) -> None:
    credentials.set_session("access-old", user, "refresh-old")
    transport = GatedTransport(response=RawResponse(status=401, body={"error": "invalid refresh token"}))
    coordinator = RefreshCoordinator(credentials, transport)

    tasks = [asyncio.create_task(coordinator.refresh()) for _ in range(3)]
    await _settle()
    transport.release.set()
    assert await asyncio.gather(*tasks) == [False, False, False]
    assert len(transport.sent) == 1
    # the coordinator does not touch the session on failure; the gateway does
    assert credentials.get_access() == "access-old"


@pytest.mark.asyncio
async def test_missing_refresh_credential_fails_without_network(credentials, user) -> None:
    credentials.set_session("access-old", user)
    transport = GatedTransport()
    coordinator = RefreshCoordinator(credentials, transport)
    assert await coordinator.refresh() is False
    assert transport.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"refresh_token": "refresh-new", "user": USER},
        {"access_token": "access-new", "refresh_token": "refresh-new"},
        {"access_token": "", "user": USER},
        ["not", "an", "object"],
        None,
    ],
)
async def test_malformed_refresh_reply_fails(credentials, user, body) -> None:
    credentials.set_session("access-old", user, "refresh-old")
    transport = GatedTransport(response=RawResponse(status=200, body=body))
    transport.release.set()
    coordinator = RefreshCoordinator(credentials, transport)
    assert await coordinator.refresh() is False
    assert credentials.get_access() == "access-old"


@pytest.mark.asyncio
async def test_legacy_token_field_is_accepted(credentials, user) -> None:
    credentials.set_session("access-old", user, "refresh-old")
    transport = GatedTransport(response=RawResponse(status=200, body={"token": "access-new", "user": USER}))
    transport.release.set()
    coordinator = RefreshCoordinator(credentials, transport)
    assert await coordinator.refresh() is True
    assert credentials.get_access() == "access-new"
    # no new refresh credential issued, so the current one stays
    assert credentials.get_refresh() == "refresh-old"


@pytest.mark.asyncio
async def test_transport_error_is_a_refresh_failure(credentials, user) -> None:
    credentials.set_session("access-old", user, "refresh-old")
    transport = GatedTransport(error=TransportError("Network error"))
    transport.release.set()
    coordinator = RefreshCoordinator(credentials, transport)
    assert await coordinator.refresh() is False
    assert coordinator.in_flight is False


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_refresh(credentials, user) -> None:
    credentials.set_session("access-old", user, "refresh-old")
    transport = GatedTransport()
    coordinator = RefreshCoordinator(credentials, transport)

    impatient = asyncio.create_task(coordinator.refresh())
    patient = asyncio.create_task(coordinator.refresh())
    await _settle()
    impatient.cancel()
    await _settle()
    transport.release.set()
    assert await patient is True
    assert impatient.cancelled()
    assert credentials.get_access() == "access-new"
