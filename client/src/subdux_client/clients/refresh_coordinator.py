"""
Single-flight credential refresh.

Access credentials are short-lived.  When several requests fail with 401 at
the same time they must not each spend the refresh credential: the server
rotates it on every use, so only the first exchange would succeed.  The
coordinator keeps one shared task for the refresh in progress; callers that
arrive while it is pending await that same task and observe the same
outcome.  The handle is cleared when the task settles, so the next call
after that starts a fresh attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..errors import SubduxClientError
from ..models import normalize_auth_payload
from ..telemetry import REFRESH_ATTEMPTS
from .credential_store import CredentialStore
from .transport import HttpTransport


logger = logging.getLogger(__name__)


class RefreshCoordinator:
    def __init__(
        self,
        credentials: CredentialStore,
        transport: HttpTransport,
        *,
        refresh_path: str = "/auth/refresh",
    ) -> None:
        self.credentials = credentials
        self.transport = transport
        self.refresh_path = refresh_path
        self._pending: Optional["asyncio.Task[bool]"] = None

    @property
    def in_flight(self) -> bool:
        return self._pending is not None

    async def refresh(self) -> bool:
        """Refresh the access credential, sharing any attempt already running.

        Returns ``True`` when a new session was stored.  Failures are final
        for the caller; the coordinator never retries on its own.
        """
        task = self._pending
        if task is None:
            task = asyncio.ensure_future(self._run())
            self._pending = task
        # Cancelling one waiter leaves the shared refresh running.
        return await asyncio.shield(task)

    async def _run(self) -> bool:
        try:
            ok = await self._refresh_once()
        finally:
            self._pending = None
        REFRESH_ATTEMPTS.labels(outcome="success" if ok else "failure").inc()
        return ok

    async def _refresh_once(self) -> bool:
        refresh_token = self.credentials.get_refresh()
        if not refresh_token:
            logger.info("No refresh credential stored; cannot refresh session")
            return False

        try:
            response = await self.transport.send(
                "POST",
                self.refresh_path,
                headers={"Content-Type": "application/json"},
                json_body={"refresh_token": refresh_token},
            )
        except SubduxClientError as exc:
            logger.warning("Session refresh request failed: %s", exc)
            return False

        if not response.ok:
            logger.info("Session refresh rejected with status %s", response.status)
            return False

        grant = normalize_auth_payload(response.body)
        if grant is None:
            logger.warning("Session refresh returned a malformed payload")
            return False

        self.credentials.set_session(grant.access, grant.user, grant.refresh or refresh_token)
        logger.info("Session refreshed for user %s", grant.user.id)
        return True
