"""
Sign-in and sign-out on top of the request gateway.

Login replies are normalized into :class:`~subdux_client.models.SessionGrant`
before anything is persisted, so the credential store only ever sees the
canonical shape.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..errors import GENERIC_FAILURE, ApiError, UnauthorizedError
from ..models import LoginResult, User, normalize_auth_payload, normalize_login_payload

if TYPE_CHECKING:
    from ..clients.credential_store import CredentialStore
    from ..clients.http_gateway import RequestGateway


logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, gateway: "RequestGateway", credentials: "CredentialStore") -> None:
        self.gateway = gateway
        self.credentials = credentials

    async def login(self, identifier: str, password: str) -> LoginResult:
        """Sign in; persists the session unless a TOTP code is still needed."""
        try:
            payload = await self.gateway.request(
                "POST",
                "/auth/login",
                {"identifier": identifier, "password": password},
                retry_on_unauthorized=False,
            )
        except UnauthorizedError as exc:
            raise ApiError(exc.detail or exc.message, status=401) from exc
        result = normalize_login_payload(payload)
        if result is None:
            raise ApiError(GENERIC_FAILURE)
        if result.grant is not None:
            grant = result.grant
            self.credentials.set_session(grant.access, grant.user, grant.refresh)
            logger.info("Signed in as user %s", grant.user.id)
        return result

    async def verify_totp(self, totp_token: str, code: str) -> User:
        try:
            payload = await self.gateway.request(
                "POST",
                "/auth/totp/verify-login",
                {"totp_token": totp_token, "code": code},
                retry_on_unauthorized=False,
            )
        except UnauthorizedError as exc:
            raise ApiError(exc.detail or exc.message, status=401) from exc
        grant = normalize_auth_payload(payload)
        if grant is None:
            raise ApiError(GENERIC_FAILURE)
        self.credentials.set_session(grant.access, grant.user, grant.refresh)
        logger.info("Signed in as user %s after TOTP verification", grant.user.id)
        return grant.user

    def logout(self) -> None:
        self.credentials.clear_session()
        logger.info("Signed out")

    async def current_user(self) -> Optional[User]:
        """Fetch ``/auth/me`` and update the stored user record."""
        payload = await self.gateway.get("/auth/me")
        if not isinstance(payload, dict):
            return None
        user = User.model_validate(payload)
        self.credentials.set_user(user)
        return user
