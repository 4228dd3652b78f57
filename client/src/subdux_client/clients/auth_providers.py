"""
Authentication header providers.

Separating header construction from the gateway keeps the 401 handling
independent of how credentials are attached.  The API accepts either a
bearer access credential (browser sessions) or a static API key.
"""
from __future__ import annotations

from typing import Dict, Optional

from .credential_store import CredentialStore


AUTHORIZATION = "Authorization"
JSON_CONTENT_TYPE = {"Content-Type": "application/json"}


class AuthProvider:
    """Abstract base class for authentication providers."""

    refreshable = False

    def get_headers(self) -> Dict[str, str]:
        """Return the credential headers for the next request.

        Subclasses must implement this method.
        """
        raise NotImplementedError


class BearerAuthProvider(AuthProvider):
    """Attach ``Authorization: Bearer <access>`` from the credential store."""

    refreshable = True

    def __init__(self, credentials: CredentialStore) -> None:
        self.credentials = credentials

    def get_headers(self) -> Dict[str, str]:
        access = self.credentials.get_access()
        if not access:
            return {}
        return {AUTHORIZATION: f"Bearer {access}"}


class ApiKeyProvider(AuthProvider):
    """Send a long-lived API key instead of a session credential.

    API keys cannot be refreshed; a 401 with a key is final.
    """

    def __init__(self, api_key: Optional[str]) -> None:
        self.api_key = api_key or ""

    def get_headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"X-API-Key": self.api_key}
