"""Exception types raised by authenticated request execution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from authcall.net.http import TransportResponse


class AuthCallError(Exception):
    """Base class for every error surfaced to callers of the executor."""


class NetworkCallError(AuthCallError):
    """Generic network failure; the transport error is chained as ``__cause__``."""


class ConnectionUnavailableError(NetworkCallError):
    """No connectivity; the call was never attempted."""


class SessionInvalidError(NetworkCallError):
    """The service rejected the session credentials (HTTP 401)."""


class NullResponseError(NetworkCallError):
    """The transport failed before any HTTP response was received."""


class UserSuspendedError(AuthCallError):
    """The account is suspended (HTTP 403). Terminal, never retried."""

    def __init__(self, message: str = "User account suspended."):
        super().__init__(message)


class TransportError(Exception):
    """Failure reported by a request hook.

    ``response`` is None when the request never produced an HTTP response
    (DNS failure, refused connection, timeout).
    """

    def __init__(self, message: str, response: Optional["TransportResponse"] = None):
        super().__init__(message)
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None
