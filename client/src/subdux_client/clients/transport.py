"""
Low-level HTTP transport.

Wraps an ``aiohttp.ClientSession`` and turns every exchange into a
:class:`RawResponse`.  It knows nothing about credentials; the request
gateway and the refresh coordinator decide which headers go out and what a
status code means.  Idempotent ``GET`` requests are retried with
exponential backoff when the connection itself fails.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import aiohttp
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import TransportError


logger = logging.getLogger(__name__)

FormFactory = Callable[[], aiohttp.FormData]


@dataclass
class RawResponse:
    status: int
    body: Any = None
    text: str = ""
    parse_error: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpTransport:
    """Send requests relative to ``base_url`` and decode JSON replies."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        retries: int = 3,
        retry_wait_min: float = 0.5,
        retry_wait_max: float = 8.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.retries = max(1, retries)
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
        form_factory: Optional[FormFactory] = None,
    ) -> RawResponse:
        """Issue one logical request, retrying GETs on connection errors."""
        method = method.upper()
        attempts = self.retries if method == "GET" else 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception_type(aiohttp.ClientConnectionError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send_once(method, path, headers, json_body, form_factory)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise TransportError("Network error: the server could not be reached") from exc
        raise TransportError("Network error: the server could not be reached")  # pragma: no cover

    async def _send_once(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]],
        json_body: Any,
        form_factory: Optional[FormFactory],
    ) -> RawResponse:
        url = f"{self.base_url}{path}"
        kwargs: Dict[str, Any] = {"headers": dict(headers or {})}
        if form_factory is not None:
            # FormData can only be serialised once, so each attempt builds its own.
            kwargs["data"] = form_factory()
        elif json_body is not None:
            kwargs["data"] = json.dumps(json_body)
        session = self._get_session()
        async with session.request(method, url, **kwargs) as resp:
            status = resp.status
            if status == 204:
                return RawResponse(status=204)
            raw = await resp.read()
            charset = resp.charset or "utf-8"
        try:
            text = raw.decode(charset)
        except (UnicodeDecodeError, LookupError):
            logger.warning("Undecodable %s reply from %s %s (%s)", charset, method, path, status)
            return RawResponse(status=status, text=raw.decode("utf-8", errors="replace"), parse_error=True)
        if not text:
            return RawResponse(status=status, text=text)
        try:
            body = json.loads(text)
        except ValueError:
            logger.debug("Non-JSON reply from %s %s (%s): %s", method, path, status, text[:200])
            return RawResponse(status=status, text=text, parse_error=True)
        return RawResponse(status=status, body=body, text=text)
