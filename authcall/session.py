"""Account session state: credentials, re-registration and suspension."""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

import requests

from authcall.errors import SessionInvalidError, TransportError, UserSuspendedError
from authcall.executor import ReRegistrationCallback
from authcall.models import UserDetails
from authcall.net.http import transport_error_from_requests
from authcall.utils import get_logger

logger = get_logger(__name__)

Registrar = Callable[[UserDetails], str]


class AccountController:
    """Process-wide account session shared by every executor.

    ``registrar`` exchanges the stored user details for a new access token.
    Re-registration runs on a background thread; requests arriving while one
    is in flight wait for that attempt instead of starting another.
    """

    def __init__(
        self,
        registrar: Registrar,
        user: Optional[UserDetails] = None,
        access_token: Optional[str] = None,
    ):
        self.registrar = registrar
        self._user = user
        self._access_token = access_token
        self._suspended = False
        self._lock = threading.Lock()
        self._waiters: List[Optional[ReRegistrationCallback]] = []
        self._in_flight = False

    @property
    def suspended(self) -> bool:
        with self._lock:
            return self._suspended

    def set_suspended(self, suspended: bool) -> None:
        with self._lock:
            changed = self._suspended != suspended
            self._suspended = suspended
        if changed:
            logger.warning("account suspended=%s", suspended)

    @property
    def access_token(self) -> Optional[str]:
        with self._lock:
            return self._access_token

    @property
    def user(self) -> Optional[UserDetails]:
        with self._lock:
            return self._user

    def register(self, user: UserDetails) -> str:
        """Register ``user`` synchronously and remember the details for later re-registration."""
        token = self.registrar(user)
        with self._lock:
            self._user = user
            self._access_token = token
        logger.info("registered user_id=%s", user.user_id)
        return token

    def re_register_with_same_user_details(self, on_complete: Optional[ReRegistrationCallback] = None) -> None:
        with self._lock:
            user = self._user
            suspended = self._suspended
            if user is not None and not suspended:
                self._waiters.append(on_complete)
                if self._in_flight:
                    logger.debug("re-registration already in flight, waiters=%d", len(self._waiters))
                    return
                self._in_flight = True

        if user is None:
            logger.warning("re-registration skipped: no registered user")
            _notify(on_complete, SessionInvalidError("No user registered, cannot re-register."))
            return
        if suspended:
            logger.warning("re-registration skipped: account suspended")
            _notify(on_complete, UserSuspendedError())
            return

        worker = threading.Thread(target=self._re_register, args=(user,), name="authcall-reregister", daemon=True)
        worker.start()

    def _re_register(self, user: UserDetails) -> None:
        error: Optional[Exception] = None
        try:
            token = self.registrar(user)
        except Exception as exc:
            logger.error("re-registration failed user_id=%s error=%s", user.user_id, exc)
            error = exc
        else:
            logger.info("re-registration succeeded user_id=%s", user.user_id)

        with self._lock:
            if error is None:
                self._access_token = token
            waiters, self._waiters = self._waiters, []
            self._in_flight = False

        for callback in waiters:
            _notify(callback, error)


def _notify(callback: Optional[ReRegistrationCallback], error: Optional[Exception]) -> None:
    if callback is not None:
        callback(error)


class HttpRegistrar:
    """POSTs user details to the registration endpoint and returns the issued token."""

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        path: str,
        api_key: Optional[str] = None,
        timeout_sec: float = 30.0,
    ):
        self.session = session
        self.url = base_url.rstrip("/") + "/" + path.lstrip("/")
        self.api_key = api_key
        self.timeout_sec = timeout_sec

    def __call__(self, user: UserDetails) -> str:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        try:
            response = self.session.post(
                self.url,
                json=user.model_dump(exclude_none=True),
                headers=headers,
                timeout=self.timeout_sec,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise transport_error_from_requests(exc) from exc

        data = response.json() if response.content else {}
        token = data.get("accessToken") or data.get("access_token")
        if not token:
            raise TransportError("registration response carried no access token")
        return token
