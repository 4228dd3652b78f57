"""
Client utilities for talking to the Subdux API.

This package provides the credential store, the single-flight refresh
coordinator and the request gateway that ties them together, plus the
low-level aiohttp transport they share.
"""

from .auth_providers import ApiKeyProvider, AuthProvider, BearerAuthProvider  # noqa: F401
from .credential_store import CredentialStore  # noqa: F401
from .http_gateway import RequestGateway  # noqa: F401
from .refresh_coordinator import RefreshCoordinator  # noqa: F401
from .transport import HttpTransport, RawResponse  # noqa: F401
