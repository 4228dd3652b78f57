"""Exception types raised by the API client.

Every failure a caller can observe from the request layer is a
``SubduxClientError``.  Backend-reported messages pass through
:func:`localize_error` before they reach the exception so that UI code can
show ``str(exc)`` directly.
"""

from __future__ import annotations

from typing import Dict, Optional


GENERIC_FAILURE = "Request failed"
UNAUTHORIZED = "Unauthorized"

# Raw backend messages (lower-cased) mapped to what the user should see.
_BACKEND_MESSAGES: Dict[str, str] = {
    "invalid request body": "The request could not be understood. Please check the form and try again.",
    "invalid json": "The request could not be understood. Please check the form and try again.",
    "invalid id": "The requested item does not exist.",
    "invalid credentials": "Incorrect username/email or password.",
    "account is disabled": "This account has been disabled.",
    "invalid refresh token": "Your session has expired. Please sign in again.",
    "failed to refresh session": "Your session could not be renewed. Please sign in again.",
    "invalid or expired session": "Your session has expired. Please sign in again.",
    "exchange rate not found": "No exchange rate is available for this currency pair.",
    "base and target currencies are required": "Choose both currencies to convert between.",
    "preferred_currency is required": "Choose a preferred currency.",
    "no file provided": "Choose a file to upload.",
    "import file is too large": "The selected file is too large.",
    "username/email and password are required": "Enter your username/email and password.",
    "token and code are required": "Enter the verification code.",
}


def localize_error(message: Optional[str]) -> str:
    """Return the user-facing text for a backend ``error`` field.

    Blank or missing messages become the generic failure text; messages not
    in the table are returned unchanged.
    """
    if not isinstance(message, str) or not message.strip():
        return GENERIC_FAILURE
    text = message.strip()
    return _BACKEND_MESSAGES.get(text.lower(), text)


class SubduxClientError(Exception):
    """Base class for client errors."""


class ApiError(SubduxClientError):
    """A request failed; ``status`` is the HTTP status when one was received."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class UnauthorizedError(ApiError):
    """The server rejected our credentials and refreshing did not help.

    ``detail`` holds the localized backend message, when the reply had one.
    """

    def __init__(self, message: str = UNAUTHORIZED, detail: Optional[str] = None) -> None:
        super().__init__(message, status=401)
        self.detail = detail


class TransportError(ApiError):
    """The request never produced a usable response."""


class RateUnavailableError(ApiError):
    """No positive exchange rate was available for a currency pair."""


__all__ = [
    "GENERIC_FAILURE",
    "UNAUTHORIZED",
    "localize_error",
    "SubduxClientError",
    "ApiError",
    "UnauthorizedError",
    "TransportError",
    "RateUnavailableError",
]
