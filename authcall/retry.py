"""Stateful retry budget consulted by the request executor."""

from __future__ import annotations

from typing import Iterable, Optional

from authcall.config.constants import (
    DEFAULT_BACKOFF,
    DEFAULT_MAX_DELAY_SEC,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_SEC,
    DEFAULT_RETRY_STATUSES,
)
from authcall.models import RetrySettings


class RetryPolicy:
    """Bounded retry counter with fixed or exponential backoff.

    ``retry()`` consumes one unit of budget. Once it has returned False it
    keeps returning False for the lifetime of the instance. A policy belongs
    to exactly one executor and is not thread safe.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        delay_sec: float = DEFAULT_RETRY_DELAY_SEC,
        backoff: float = DEFAULT_BACKOFF,
        max_delay_sec: float = DEFAULT_MAX_DELAY_SEC,
        statuses: Optional[Iterable[int]] = None,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")
        self.max_retries = max_retries
        self.delay_sec = delay_sec
        self.backoff = backoff
        self.max_delay_sec = max_delay_sec
        self.statuses = frozenset(DEFAULT_RETRY_STATUSES if statuses is None else statuses)
        self._retry_count = 0
        self._exhausted = False

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            delay_sec=settings.delay_sec,
            backoff=settings.backoff,
            max_delay_sec=settings.max_delay_sec,
            statuses=settings.statuses,
        )

    @property
    def retry_count(self) -> int:
        return self._retry_count

    def should_retry_for_status_code(self, status_code: int) -> bool:
        return status_code in self.statuses

    def retry(self) -> bool:
        if self._exhausted or self._retry_count >= self.max_retries:
            self._exhausted = True
            return False
        self._retry_count += 1
        return True

    def delay_before_next_retry(self) -> float:
        """Seconds to wait before the attempt granted by the last ``retry()``."""
        exponent = max(self._retry_count - 1, 0)
        return min(self.max_delay_sec, self.delay_sec * (self.backoff ** exponent))

    def __repr__(self) -> str:
        return f"RetryPolicy(retry_count={self._retry_count}, max_retries={self.max_retries})"
