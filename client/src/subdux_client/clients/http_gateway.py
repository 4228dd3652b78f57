"""
Request gateway with credential attachment and refresh-then-retry.

Every API call made by the application goes through :class:`RequestGateway`.
For each logical call the gateway:

1. attaches ``Content-Type: application/json`` (except for multipart
   uploads) and the current credential headers;
2. sends the request;
3. on 401, asks the :class:`RefreshCoordinator` for a new access credential
   when the call is eligible, and replays the original request once with
   the new credential.  If the call is not eligible, the refresh fails, or
   the replay is rejected again, the session is cleared, a
   ``session_expired`` event is published and :class:`UnauthorizedError`
   is raised;
4. returns ``None`` for 204 responses, raises :class:`ApiError` with a
   localized message for other failures and returns the decoded JSON body
   otherwise.

A call never goes through more than one replay.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Mapping, Optional, Tuple, Union

import aiohttp

from ..errors import GENERIC_FAILURE, ApiError, TransportError, UnauthorizedError, localize_error
from ..services.event_bus import SESSION_EXPIRED
from ..telemetry import GATEWAY_RESPONSES, status_class
from .auth_providers import AUTHORIZATION, JSON_CONTENT_TYPE, AuthProvider, BearerAuthProvider
from .credential_store import CredentialStore
from .refresh_coordinator import RefreshCoordinator
from .transport import FormFactory, HttpTransport, RawResponse


logger = logging.getLogger(__name__)

#: Upload field value: plain text, or ``(filename, content, content_type)``.
UploadValue = Union[str, Tuple[str, bytes, str]]


class CallState(str, enum.Enum):
    """Non-terminal states of a logical call; success returns, failure raises."""

    PENDING = "pending"
    RETRY_PENDING = "retry_pending"


class RequestGateway:
    """Asynchronous API client that owns the session's 401 handling."""

    def __init__(
        self,
        transport: HttpTransport,
        credentials: CredentialStore,
        *,
        coordinator: Optional[RefreshCoordinator] = None,
        auth_provider: Optional[AuthProvider] = None,
        event_bus: Any = None,
        refresh_path: str = "/auth/refresh",
        login_path: str = "/login",
    ) -> None:
        self.transport = transport
        self.credentials = credentials
        self.auth_provider = auth_provider or BearerAuthProvider(credentials)
        self.coordinator = coordinator or RefreshCoordinator(
            credentials, transport, refresh_path=refresh_path
        )
        self.event_bus = event_bus
        self.refresh_path = refresh_path
        self.login_path = login_path

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "RequestGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Public API

    async def request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        *,
        retry_on_unauthorized: bool = True,
    ) -> Any:
        """Send a JSON request and return the decoded body (``None`` for 204)."""
        return await self._execute(method, path, retry_on_unauthorized, json_body=payload)

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, payload: Any = None) -> Any:
        return await self.request("POST", path, payload)

    async def put(self, path: str, payload: Any = None) -> Any:
        return await self.request("PUT", path, payload)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def upload(
        self,
        path: str,
        fields: Mapping[str, UploadValue],
        *,
        method: str = "POST",
        retry_on_unauthorized: bool = True,
    ) -> Any:
        """Send a multipart form; follows the same 401 handling as :meth:`request`."""

        def build_form() -> aiohttp.FormData:
            form = aiohttp.FormData()
            for name, value in fields.items():
                if isinstance(value, tuple):
                    filename, content, content_type = value
                    form.add_field(name, content, filename=filename, content_type=content_type)
                else:
                    form.add_field(name, value)
            return form

        return await self._execute(method, path, retry_on_unauthorized, form_factory=build_form)

    # State machine

    async def _execute(
        self,
        method: str,
        path: str,
        retry_on_unauthorized: bool,
        *,
        json_body: Any = None,
        form_factory: Optional[FormFactory] = None,
    ) -> Any:
        state = CallState.PENDING
        response, had_credential = await self._attempt(method, path, json_body, form_factory)

        if response.status == 401:
            if retry_on_unauthorized and self._eligible_for_refresh(path, had_credential):
                if await self.coordinator.refresh():
                    state = CallState.RETRY_PENDING
                    logger.debug("Replaying %s %s with refreshed credential", method, path)
                    response, _ = await self._attempt(method, path, json_body, form_factory)
            if response.status == 401:
                logger.info("%s %s unauthorized (state=%s); clearing session", method, path, state.value)
                await self._expire_session(path)
                raw = response.body.get("error") if isinstance(response.body, dict) else None
                raise UnauthorizedError(detail=localize_error(raw) if raw else None)

        return self._finish(method, path, response)

    async def _attempt(
        self,
        method: str,
        path: str,
        json_body: Any,
        form_factory: Optional[FormFactory],
    ) -> Tuple[RawResponse, bool]:
        credential_headers = self.auth_provider.get_headers()
        headers = dict(credential_headers)
        if form_factory is None:
            headers.update(JSON_CONTENT_TYPE)
        response = await self.transport.send(
            method,
            path,
            headers=headers,
            json_body=json_body,
            form_factory=form_factory,
        )
        GATEWAY_RESPONSES.labels(status_class=status_class(response.status)).inc()
        return response, AUTHORIZATION in credential_headers

    def _eligible_for_refresh(self, path: str, had_credential: bool) -> bool:
        return (
            self.auth_provider.refreshable
            and had_credential
            and not self._is_refresh_path(path)
            and self.credentials.get_refresh() is not None
        )

    def _is_refresh_path(self, path: str) -> bool:
        return path.split("?", 1)[0].rstrip("/") == self.refresh_path.rstrip("/")

    async def _expire_session(self, path: str) -> None:
        self.credentials.clear_session()
        if self.event_bus is not None:
            await self.event_bus.publish(SESSION_EXPIRED, {"path": path, "redirect": self.login_path})

    @staticmethod
    def _finish(method: str, path: str, response: RawResponse) -> Any:
        if response.status == 204:
            return None
        if not response.ok:
            raw = response.body.get("error") if isinstance(response.body, dict) else None
            logger.error("API error %s on %s %s: %s", response.status, method, path, response.text[:200])
            raise ApiError(localize_error(raw), status=response.status)
        if response.parse_error:
            raise TransportError(GENERIC_FAILURE, status=response.status)
        return response.body
