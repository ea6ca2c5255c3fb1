"""HTTP transport: resilient sessions and REST call hooks for the executor."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Mapping, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from authcall.errors import TransportError
from authcall.executor import RequestHooks
from authcall.utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_session(
    total: int = 2,
    backoff: float = 0.5,
    allowed_methods: frozenset[str] | None = None,
) -> requests.Session:
    """Create a requests session that retries connection-level failures only.

    Status-based retries (429/5xx) are left to the request executor so the
    retry budget is counted in one place; ``status_forcelist`` stays empty.
    """

    methods = allowed_methods or frozenset({"GET", "POST", "PUT", "DELETE"})
    session = requests.Session()
    retry = Retry(
        total=total,
        read=total,
        connect=total,
        status=0,
        backoff_factor=backoff,
        status_forcelist=(),
        allowed_methods=methods,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


@dataclass
class TransportResponse:
    status_code: int
    reason: str = ""
    body: Optional[bytes] = None
    headers: Dict[str, str] = field(default_factory=dict)
    encoding: Optional[str] = None

    @classmethod
    def from_requests(cls, response: requests.Response) -> "TransportResponse":
        return cls(
            status_code=response.status_code,
            reason=response.reason or "",
            body=response.content,
            headers=dict(response.headers or {}),
            encoding=response.encoding,
        )


def transport_error_from_requests(exc: requests.RequestException) -> TransportError:
    response = getattr(exc, "response", None)
    if response is not None:
        return TransportError(str(exc), TransportResponse.from_requests(response))
    return TransportError(str(exc))


def _json_or_none(response: requests.Response) -> Any:
    if not response.content:
        return None
    return response.json()


class RestEndpoint(Generic[T]):
    """One REST call against the service, exposed as executor hooks.

    ``token_provider`` is read on every attempt so a replay after
    re-registration picks up the freshly issued credentials.
    """

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        method: str,
        path: str,
        payload: Any = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        parser: Callable[[requests.Response], T] = _json_or_none,
        timeout_sec: float = 30.0,
        pool: Optional[ThreadPoolExecutor] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.session = session
        self.url = base_url.rstrip("/") + "/" + path.lstrip("/")
        self.method = method.upper()
        self.payload = payload
        self.token_provider = token_provider
        self.parser = parser
        self.timeout_sec = timeout_sec
        self._owns_pool = pool is None
        self.pool = pool or ThreadPoolExecutor(max_workers=1, thread_name_prefix="authcall")
        self.headers = dict(headers or {})

    def _headers(self, api_key: str) -> Dict[str, str]:
        headers = {"Accept": "application/json", **self.headers}
        if api_key:
            headers["apikey"] = api_key
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def call(self, api_key: str) -> T:
        kwargs: Dict[str, Any] = {"headers": self._headers(api_key), "timeout": self.timeout_sec}
        if self.payload is not None:
            kwargs["json"] = self.payload
        try:
            response = self.session.request(self.method, self.url, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise transport_error_from_requests(exc) from exc
        logger.debug("rest call ok method=%s url=%s status=%s", self.method, self.url, response.status_code)
        try:
            return self.parser(response)
        except Exception as exc:
            raise TransportError(f"invalid response body: {exc!r}", TransportResponse.from_requests(response)) from exc

    def call_async(
        self,
        api_key: str,
        on_success: Callable[[T], None],
        on_failure: Callable[[TransportError], None],
    ) -> None:
        """Run ``call`` on ``pool``; exactly one of the callbacks fires.

        Anything ``call`` raises besides ``TransportError`` is logged and
        reported as a ``TransportError`` without response.
        """

        def run():
            try:
                result = self.call(api_key)
            except TransportError as error:
                self._deliver(on_failure, error)
            except Exception as exc:
                logger.exception("rest call crashed method=%s url=%s", self.method, self.url)
                error = TransportError(f"unexpected error: {exc!r}")
                error.__cause__ = exc
                self._deliver(on_failure, error)
            else:
                self._deliver(on_success, result)

        self.pool.submit(run)

    def _deliver(self, callback: Callable[[Any], None], value: Any) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("result callback raised method=%s url=%s", self.method, self.url)

    def close(self) -> None:
        """Shut down the pool when the endpoint created it."""
        if self._owns_pool:
            self.pool.shutdown(wait=True)

    def hooks(self, on_connection_lost: Optional[Callable[[], None]] = None) -> RequestHooks[T]:
        return RequestHooks(
            perform_sync=self.call,
            perform_async=self.call_async,
            on_connection_lost=on_connection_lost or (lambda: None),
        )
