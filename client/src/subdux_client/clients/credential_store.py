"""
Credential store.

Persists the access credential, the refresh credential and the current
user record in a :class:`~subdux_client.services.storage.KeyValueStorage`.
The store is an explicit object rather than ambient global state so tests
can hand in a :class:`MemoryStorage`.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from ..models import User, user_to_json
from ..services.storage import KeyValueStorage


logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "token"
REFRESH_TOKEN_KEY = "refreshToken"
USER_KEY = "user"


class CredentialStore:
    """Key-value wrapper around the persisted session."""

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        access_key: str = ACCESS_TOKEN_KEY,
        refresh_key: str = REFRESH_TOKEN_KEY,
        user_key: str = USER_KEY,
    ) -> None:
        self.storage = storage
        self.access_key = access_key
        self.refresh_key = refresh_key
        self.user_key = user_key

    def init(self) -> None:
        self.storage.init()

    def get_access(self) -> Optional[str]:
        return self.storage.get(self.access_key) or None

    def get_refresh(self) -> Optional[str]:
        return self.storage.get(self.refresh_key) or None

    def set_access(self, token: str) -> None:
        self.storage.set(self.access_key, token)

    def set_refresh(self, token: str) -> None:
        self.storage.set(self.refresh_key, token)

    def set_session(self, access: str, user: User, refresh: Optional[str] = None) -> None:
        """Persist a freshly issued session.

        Without ``refresh`` any previously stored refresh credential is
        removed, so a login that did not issue one leaves the session
        non-refreshable.
        """
        self.storage.set(self.access_key, access)
        self.storage.set(self.user_key, json.dumps(user_to_json(user)))
        if refresh:
            self.storage.set(self.refresh_key, refresh)
        else:
            self.storage.delete(self.refresh_key)

    def clear_session(self) -> None:
        self.storage.delete_many([self.access_key, self.refresh_key, self.user_key])

    def is_authenticated(self) -> bool:
        return self.get_access() is not None

    def get_user(self) -> Optional[User]:
        raw = self.storage.get(self.user_key)
        if not raw:
            return None
        try:
            return User.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Stored user record is corrupt; treating it as absent: %s", exc)
            return None

    def set_user(self, user: User) -> None:
        self.storage.set(self.user_key, json.dumps(user_to_json(user)))

    def is_privileged(self) -> bool:
        user = self.get_user()
        return user is not None and user.is_admin
