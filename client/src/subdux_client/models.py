"""
Data models for the API client using Pydantic.

The backend is loose about a few response shapes (most notably the auth
replies, which carry the access credential as either ``access_token`` or
``token``).  The helpers here turn those payloads into one canonical type
right after the network call so nothing downstream has to care.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


logger = logging.getLogger(__name__)


class User(BaseModel):
    """Identity and role snapshot persisted next to the credentials."""

    model_config = ConfigDict(extra="allow")

    id: int
    username: str = ""
    email: str = ""
    role: str = "user"
    status: str = "active"
    totp_enabled: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SessionGrant(BaseModel):
    """Canonical credential set issued by login or refresh."""

    access: str = Field(..., min_length=1)
    user: User
    refresh: Optional[str] = None


class LoginResult(BaseModel):
    """Outcome of ``POST /auth/login``.

    Either ``grant`` is set, or the server wants a second factor and
    ``requires_totp``/``totp_token`` are set instead.
    """

    grant: Optional[SessionGrant] = None
    requires_totp: bool = False
    totp_token: Optional[str] = None


class ExchangeRateInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    base_currency: str = ""
    target_currency: str
    rate: float = Field(..., allow_inf_nan=False)

    @field_validator("base_currency", "target_currency")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class CurrencyPreference(BaseModel):
    model_config = ConfigDict(extra="ignore")

    preferred_currency: str = ""


def normalize_auth_payload(payload: Any) -> Optional[SessionGrant]:
    """Turn an auth reply into a :class:`SessionGrant`.

    Returns ``None`` when the payload lacks an access credential or a user
    record; malformed replies are never raised to the caller.
    """
    if not isinstance(payload, dict):
        return None
    access = payload.get("access_token") or payload.get("token")
    user = payload.get("user")
    if not isinstance(access, str) or not access or not isinstance(user, dict):
        return None
    refresh = payload.get("refresh_token")
    try:
        return SessionGrant(
            access=access,
            user=User.model_validate(user),
            refresh=refresh if isinstance(refresh, str) and refresh else None,
        )
    except ValidationError as exc:
        logger.warning("Discarding malformed auth payload: %s", exc.errors()[:1])
        return None


def normalize_login_payload(payload: Any) -> Optional[LoginResult]:
    if isinstance(payload, dict) and payload.get("requires_totp"):
        token = payload.get("totp_token")
        if not isinstance(token, str) or not token:
            return None
        return LoginResult(requires_totp=True, totp_token=token)
    grant = normalize_auth_payload(payload)
    if grant is None:
        return None
    return LoginResult(grant=grant)


def user_to_json(user: User) -> Dict[str, Any]:
    return user.model_dump(mode="json")
