"""
Client-side session and exchange-rate layer for the Subdux subscription
tracker.

The package contains the request gateway that attaches credentials and
transparently refreshes them (``clients``), and the exchange-rate cache and
resolver used for currency-aware totals (``services``).  Most callers only
need :class:`ClientContext`, which wires everything to one storage backend.
"""

from .clients import CredentialStore, RefreshCoordinator, RequestGateway  # noqa: F401
from .config import ClientSettings  # noqa: F401
from .context import ClientContext  # noqa: F401
from .errors import ApiError, SubduxClientError, UnauthorizedError  # noqa: F401
from .services import RateCacheStore, RateResolver  # noqa: F401

__version__ = "0.1.0"
