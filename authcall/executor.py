"""Authenticated request execution.

``AuthenticatedRequestExecutor`` runs one logical call against the service
under three policies:

* connectivity gate: without a connection the call is never attempted, the
  ``on_connection_lost`` hook fires and the caller gets
  ``ConnectionUnavailableError`` straight away;
* retry: statuses the ``RetryPolicy`` classifies as transient are retried
  after the policy's delay until its budget runs out;
* session recovery: 401 triggers re-registration with the same user details,
  403 marks the account suspended.

The blocking mode does not replay the call after a 401; it starts
re-registration and raises ``SessionInvalidError``. The callback mode waits
for re-registration and replays the whole call from the connectivity gate
when it succeeds, at most ``max_reauthentications`` times per logical call.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Iterable, Optional, Protocol, TypeVar

from authcall.config.constants import (
    DEFAULT_DIAGNOSTIC_STATUSES,
    HTTP_FORBIDDEN,
    HTTP_UNAUTHORIZED,
    MSG_NETWORK_ERROR,
    MSG_NO_CONNECTION,
    MSG_NULL_RESPONSE,
    MSG_SESSION_INVALID,
)
from authcall.errors import (
    ConnectionUnavailableError,
    NetworkCallError,
    NullResponseError,
    SessionInvalidError,
    TransportError,
    UserSuspendedError,
)
from authcall.retry import RetryPolicy
from authcall.utils import get_logger, read_body, redact_secrets

logger = get_logger(__name__)

T = TypeVar("T")

ReRegistrationCallback = Callable[[Optional[Exception]], None]
Scheduler = Callable[[float, Callable[[], None]], None]


class SessionController(Protocol):
    def re_register_with_same_user_details(self, on_complete: Optional[ReRegistrationCallback] = None) -> None:
        """Re-issue credentials; ``on_complete(None)`` on success, ``on_complete(exc)`` on failure."""

    def set_suspended(self, suspended: bool) -> None: ...


class ConnectivityObserver(Protocol):
    def is_connection_available(self) -> bool: ...

    def register_for_connection_restored(self, callback: Callable[[], None]) -> None: ...


class ResultListener(Generic[T]):
    """Terminal callbacks of an asynchronous call. Subclasses override what they need."""

    def success(self, result: T) -> None:
        pass

    def error(self, error: Exception, validation_errors: Optional[dict] = None) -> None:
        pass

    def user_suspended(self) -> None:
        pass


@dataclass
class RequestHooks(Generic[T]):
    """Per-endpoint request implementation.

    ``perform_sync(api_key)`` returns the result or raises ``TransportError``.
    ``perform_async(api_key, on_success, on_failure)`` must call exactly one of
    the two callbacks, on any thread.
    """

    perform_sync: Callable[[str], T]
    perform_async: Callable[[str, Callable[[T], None], Callable[[TransportError], None]], None]
    on_connection_lost: Callable[[], None] = lambda: None


class Outcome(Enum):
    RETRY = "retry"
    REAUTHENTICATE = "reauthenticate"
    SUSPENDED = "suspended"
    FAILED = "failed"
    NULL_RESPONSE = "null_response"


def timer_scheduler(delay: float, fn: Callable[[], None]) -> None:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()


class _TerminalDelivery(Generic[T]):
    """Forwards at most one terminal callback to an optional listener."""

    def __init__(self, listener: Optional[ResultListener[T]], name: str):
        self._listener = listener
        self._name = name
        self.reauthentications = 0
        self._lock = threading.Lock()
        self._delivered = False

    def _claim(self, kind: str) -> bool:
        with self._lock:
            if self._delivered:
                logger.warning("%s: dropping duplicate terminal callback kind=%s", self._name, kind)
                return False
            self._delivered = True
        return self._listener is not None

    def success(self, result: T) -> None:
        if self._claim("success"):
            self._listener.success(result)

    def error(self, error: Exception) -> None:
        if self._claim("error"):
            self._listener.error(error, None)

    def user_suspended(self) -> None:
        if self._claim("user_suspended"):
            self._listener.user_suspended()


class AuthenticatedRequestExecutor(Generic[T]):
    """Gated, retried, session-aware execution of one logical request.

    The executor owns its ``RetryPolicy``: every retry and every replay of
    the logical call draws from the same budget. Create one executor per
    logical request; reusing an instance keeps consuming the spent budget.
    """

    def __init__(
        self,
        hooks: RequestHooks[T],
        session: SessionController,
        connectivity: ConnectivityObserver,
        retry_policy: Optional[RetryPolicy] = None,
        diagnostic_statuses: Iterable[int] = DEFAULT_DIAGNOSTIC_STATUSES,
        sleep: Callable[[float], None] = time.sleep,
        scheduler: Scheduler = timer_scheduler,
        max_reauthentications: int = 1,
        name: str = "request",
    ):
        self.hooks = hooks
        self.session = session
        self.connectivity = connectivity
        self.retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self.diagnostic_statuses = frozenset(diagnostic_statuses)
        self._sleep = sleep
        self._schedule = scheduler
        self.max_reauthentications = max_reauthentications
        self.name = name

    # ---------- blocking mode ----------

    def perform_synchronous(self, api_key: str) -> T:
        while True:
            if not self._connection_available():
                raise ConnectionUnavailableError(MSG_NO_CONNECTION)
            try:
                return self.hooks.perform_sync(api_key)
            except TransportError as error:
                outcome = self._classify(error)
                if outcome is Outcome.RETRY:
                    self._sleep(self.retry_policy.delay_before_next_retry())
                    continue
                if outcome is Outcome.REAUTHENTICATE:
                    self.session.re_register_with_same_user_details(None)
                    raise SessionInvalidError(MSG_SESSION_INVALID) from error
                if outcome is Outcome.SUSPENDED:
                    self.session.set_suspended(True)
                    raise UserSuspendedError() from error
                raise self._failure(outcome, error) from error

    # ---------- callback mode ----------

    def perform_asynchronous(self, api_key: str, listener: Optional[ResultListener[T]] = None) -> None:
        self._perform_async(api_key, _TerminalDelivery(listener, self.name))

    def _perform_async(self, api_key: str, delivery: _TerminalDelivery[T]) -> None:
        if not self._connection_available():
            delivery.error(ConnectionUnavailableError(MSG_NO_CONNECTION))
            return
        self.hooks.perform_async(
            api_key,
            delivery.success,
            lambda error: self._on_async_failure(api_key, delivery, error),
        )

    def _on_async_failure(self, api_key: str, delivery: _TerminalDelivery[T], error: TransportError) -> None:
        outcome = self._classify(error)
        if outcome is Outcome.RETRY:
            self._schedule(
                self.retry_policy.delay_before_next_retry(),
                lambda: self._perform_async(api_key, delivery),
            )
        elif outcome is Outcome.REAUTHENTICATE:
            if delivery.reauthentications >= self.max_reauthentications:
                logger.error("%s: session still rejected after re-registration", self.name)
                failure = SessionInvalidError(MSG_SESSION_INVALID)
                failure.__cause__ = error
                delivery.error(failure)
                return
            delivery.reauthentications += 1

            def on_reregistered(reauth_error: Optional[Exception]) -> None:
                if reauth_error is None:
                    logger.info("%s: re-registration succeeded, replaying call", self.name)
                    self._perform_async(api_key, delivery)
                else:
                    logger.error("%s: re-registration failed error=%s", self.name, reauth_error)
                    delivery.error(reauth_error)

            self.session.re_register_with_same_user_details(on_reregistered)
        elif outcome is Outcome.SUSPENDED:
            self.session.set_suspended(True)
            delivery.user_suspended()
        else:
            delivery.error(self._failure(outcome, error))

    # ---------- shared ----------

    def _connection_available(self) -> bool:
        if self.connectivity.is_connection_available():
            return True
        logger.warning("%s: connection not available, listening for restore", self.name)
        self.hooks.on_connection_lost()
        return False

    def _classify(self, error: TransportError) -> Outcome:
        """Map a transport failure to the next step; consumes retry budget."""
        response = error.response
        if response is None:
            logger.error("%s: transport failure without response error=%s", self.name, redact_secrets(str(error)))
            return Outcome.NULL_RESPONSE

        status = response.status_code
        if status in self.diagnostic_statuses:
            body = read_body(response.body, response.encoding)
            logger.error(
                "%s: error response status=%s reason=%s body=%s",
                self.name,
                status,
                response.reason,
                redact_secrets(body or ""),
            )

        if self.retry_policy.should_retry_for_status_code(status) and self.retry_policy.retry():
            logger.warning(
                "%s: retrying status=%s attempt=%d/%d delay=%.2f",
                self.name,
                status,
                self.retry_policy.retry_count,
                self.retry_policy.max_retries,
                self.retry_policy.delay_before_next_retry(),
            )
            return Outcome.RETRY
        if status == HTTP_UNAUTHORIZED:
            logger.warning("%s: session rejected status=%s, re-registering", self.name, status)
            return Outcome.REAUTHENTICATE
        if status == HTTP_FORBIDDEN:
            logger.warning("%s: account suspended status=%s", self.name, status)
            return Outcome.SUSPENDED
        logger.error("%s: call failed status=%s reason=%s", self.name, status, response.reason)
        return Outcome.FAILED

    def _failure(self, outcome: Outcome, error: TransportError) -> NetworkCallError:
        if outcome is Outcome.NULL_RESPONSE:
            failure = NullResponseError(MSG_NULL_RESPONSE)
        else:
            reason = error.response.reason if error.response is not None else ""
            failure = NetworkCallError(f"{MSG_NETWORK_ERROR} {reason}".strip())
        failure.__cause__ = error
        return failure
