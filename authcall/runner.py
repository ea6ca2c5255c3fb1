"""Wire configuration, transport and session state into request executors."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import requests

from authcall.config.loader import load_config, resolve_api_key
from authcall.errors import NetworkCallError, UserSuspendedError
from authcall.executor import AuthenticatedRequestExecutor, ResultListener
from authcall.models import ClientConfig
from authcall.net.connectivity import ConnectivityMonitor, http_probe, wait_for_connection
from authcall.net.http import RestEndpoint, retry_session
from authcall.retry import RetryPolicy
from authcall.session import AccountController, HttpRegistrar
from authcall.utils import get_logger

logger = get_logger(__name__)


class AuthenticatedClient:
    """Shared session, connectivity and transport for every call to one service."""

    def __init__(
        self,
        config: ClientConfig,
        http_session: Optional[requests.Session] = None,
        account: Optional[AccountController] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
    ):
        self.config = config
        self.api_key = resolve_api_key(config) or ""
        self.base_url = str(config.service.base_url)
        self.http = http_session or retry_session(total=config.service.connect_retries)
        self.pool = ThreadPoolExecutor(max_workers=config.service.max_workers, thread_name_prefix="authcall")
        self.account = account or AccountController(
            HttpRegistrar(
                self.http,
                self.base_url,
                config.session.register_path,
                api_key=self.api_key,
                timeout_sec=config.service.timeout_sec,
            ),
            user=config.session.user,
            access_token=config.session.access_token,
        )
        if connectivity is None:
            probe_url = config.connectivity.probe_url
            probe = http_probe(str(probe_url), config.connectivity.probe_timeout_sec) if probe_url else None
            connectivity = ConnectivityMonitor(probe=probe)
        self.connectivity = connectivity

    def executor(self, method: str, path: str, payload: Any = None) -> AuthenticatedRequestExecutor[Any]:
        """Fresh executor, and so a fresh retry budget, for one logical call."""
        name = f"{method.upper()} {path}"
        endpoint: RestEndpoint[Any] = RestEndpoint(
            self.http,
            self.base_url,
            method,
            path,
            payload=payload,
            token_provider=lambda: self.account.access_token,
            timeout_sec=self.config.service.timeout_sec,
            pool=self.pool,
        )

        def on_connection_lost() -> None:
            self.connectivity.register_for_connection_restored(
                lambda: logger.info("connection restored, %s can be performed again", name)
            )

        return AuthenticatedRequestExecutor(
            endpoint.hooks(on_connection_lost),
            self.account,
            self.connectivity,
            retry_policy=RetryPolicy.from_settings(self.config.retry),
            diagnostic_statuses=self.config.diagnostics.log_body_statuses,
            name=name,
        )

    def call(self, method: str, path: str, payload: Any = None) -> Any:
        return self.executor(method, path, payload).perform_synchronous(self.api_key)

    def call_async(self, method: str, path: str, payload: Any = None, listener: Optional[ResultListener[Any]] = None) -> None:
        self.executor(method, path, payload).perform_asynchronous(self.api_key, listener)

    def close(self) -> None:
        self.pool.shutdown(wait=True)
        self.http.close()


class BlockingListener(ResultListener[Any]):
    """Turns the terminal callback of an asynchronous call back into a return value."""

    def __init__(self):
        self._done = threading.Event()
        self.result: Any = None
        self.failure: Optional[Exception] = None

    def success(self, result: Any) -> None:
        self.result = result
        self._done.set()

    def error(self, error: Exception, validation_errors: Optional[dict] = None) -> None:
        self.failure = error
        self._done.set()

    def user_suspended(self) -> None:
        self.failure = UserSuspendedError()
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> Any:
        if not self._done.wait(timeout):
            raise NetworkCallError(f"Timed out after {timeout}s waiting for asynchronous call.")
        if self.failure is not None:
            raise self.failure
        return self.result


def run_once(
    config_path: str,
    method: str,
    path: str,
    payload: Any = None,
    use_async: bool = False,
    wait_timeout: Optional[float] = None,
    wait_connection_attempts: int = 0,
) -> Any:
    """Perform one call described on the command line and return its result.

    With ``wait_connection_attempts`` the call first waits for the connectivity
    monitor to report a connection; the executor gate still decides.
    """
    config = load_config(config_path)
    client = AuthenticatedClient(config)
    try:
        if wait_connection_attempts > 0 and not wait_for_connection(client.connectivity, attempts=wait_connection_attempts):
            logger.warning("no connection after waiting, attempting call anyway path=%s", path)
        logger.info("call start method=%s path=%s mode=%s", method, path, "async" if use_async else "sync")
        if not use_async:
            return client.call(method, path, payload)
        listener = BlockingListener()
        client.call_async(method, path, payload, listener)
        return listener.wait(wait_timeout)
    finally:
        client.close()
