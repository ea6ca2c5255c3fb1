"""Authenticated request execution with retries and session recovery."""

from .errors import (
    AuthCallError,
    ConnectionUnavailableError,
    NetworkCallError,
    NullResponseError,
    SessionInvalidError,
    TransportError,
    UserSuspendedError,
)
from .executor import AuthenticatedRequestExecutor, RequestHooks, ResultListener
from .retry import RetryPolicy

__all__ = [
    "AuthCallError",
    "AuthenticatedRequestExecutor",
    "ConnectionUnavailableError",
    "NetworkCallError",
    "NullResponseError",
    "RequestHooks",
    "ResultListener",
    "RetryPolicy",
    "SessionInvalidError",
    "TransportError",
    "UserSuspendedError",
]
