"""Connectivity observer used by the executor's connection gate."""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

import requests
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_exponential

from authcall.utils import get_logger

logger = get_logger(__name__)

Probe = Callable[[], bool]


def http_probe(url: str, timeout: float = 3.0) -> Probe:
    """Probe that reports connectivity when ``url`` answers at all."""

    def probe() -> bool:
        try:
            requests.head(url, timeout=timeout, allow_redirects=True)
        except requests.RequestException as exc:
            logger.debug("connectivity probe failed url=%s error=%s", url, exc)
            return False
        return True

    return probe


class ConnectivityMonitor:
    """Tracks connection state and resumes listeners when it comes back.

    With a ``probe`` every availability check asks the probe; without one the
    state is whatever ``notify_connection_changed`` last reported.
    """

    def __init__(self, probe: Optional[Probe] = None, available: bool = True):
        self.probe = probe
        self._available = available
        self._listeners: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def is_connection_available(self) -> bool:
        if self.probe is None:
            with self._lock:
                return self._available
        available = self.probe()
        self.notify_connection_changed(available)
        return available

    def register_for_connection_restored(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(callback)
        logger.debug("connection restore listener registered pending=%d", len(self._listeners))

    def notify_connection_changed(self, available: bool) -> None:
        with self._lock:
            restored = available and not self._available
            self._available = available
            listeners: List[Callable[[], None]] = []
            if available:
                listeners, self._listeners = self._listeners, []

        if restored:
            logger.info("connection restored listeners=%d", len(listeners))
        for callback in listeners:
            callback()


def wait_for_connection(
    monitor: ConnectivityMonitor,
    attempts: int = 10,
    max_wait: float = 10.0,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Block until ``monitor`` reports a connection; False when attempts run out."""

    @retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=max_wait),
        retry=retry_if_result(lambda available: not available),
        sleep=sleep,
    )
    def _check() -> bool:
        return monitor.is_connection_available()

    try:
        return _check()
    except RetryError:
        logger.warning("connection still unavailable after attempts=%d", attempts)
        return False
