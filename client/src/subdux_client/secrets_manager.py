"""
secrets_manager
================

Loads bootstrap credentials for non-interactive use (scripts, CI jobs,
containers).  A secret is read from the environment, or from a file when
the corresponding ``*_FILE`` variable is set, which lets operators mount
tokens as Docker/Kubernetes secrets without exposing them in the
environment.

Example usage::

    from subdux_client.secrets_manager import EnvFileSecretsManager, bootstrap_session

    bootstrap_session(credentials, EnvFileSecretsManager())
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .clients.credential_store import CredentialStore


logger = logging.getLogger(__name__)

ACCESS_TOKEN_ENV = "SUBDUX_ACCESS_TOKEN"
REFRESH_TOKEN_ENV = "SUBDUX_REFRESH_TOKEN"
API_KEY_ENV = "SUBDUX_API_KEY"


class BaseSecretsManager:
    """Abstract base class for secrets managers."""

    def get_secret(self, name: str) -> Optional[str]:  # pragma: no cover - override
        """Return the secret value for ``name`` or ``None`` if unavailable."""
        raise NotImplementedError


class EnvFileSecretsManager(BaseSecretsManager):
    """
    Loads secrets from environment variables and optional ``*_FILE`` paths.

    If both ``{name}`` and ``{name}_FILE`` are set, the file takes
    precedence.  Relative file paths are resolved against ``base_path``.
    """

    def __init__(self, base_path: Optional[Path] = None) -> None:
        self.base_path = base_path
        self._cache: Dict[str, Optional[str]] = {}

    def get_secret(self, name: str) -> Optional[str]:
        if name in self._cache:
            return self._cache[name]

        file_path = os.getenv(f"{name}_FILE")
        if file_path:
            path = Path(file_path)
            if not path.is_absolute() and self.base_path is not None:
                path = self.base_path / path
            try:
                value: Optional[str] = path.read_text(encoding="utf-8").strip() or None
            except OSError as exc:
                logger.warning("Failed to read secret file for %s: %s", name, exc)
                value = None
        else:
            value = os.getenv(name) or None

        self._cache[name] = value
        return value


def bootstrap_session(credentials: "CredentialStore", secrets: BaseSecretsManager) -> bool:
    """Seed an empty credential store from configured secrets.

    Existing sessions are left alone.  Only the access/refresh pair is
    seeded; the user record is filled in by the first ``/auth/me`` call.
    Returns ``True`` when credentials were written.
    """
    if credentials.is_authenticated():
        return False
    access = secrets.get_secret(ACCESS_TOKEN_ENV)
    if not access:
        return False
    credentials.set_access(access)
    refresh = secrets.get_secret(REFRESH_TOKEN_ENV)
    if refresh:
        credentials.set_refresh(refresh)
    logger.info("Seeded session from %s%s", ACCESS_TOKEN_ENV, " with refresh credential" if refresh else "")
    return True


__all__ = [
    "BaseSecretsManager",
    "EnvFileSecretsManager",
    "bootstrap_session",
]
