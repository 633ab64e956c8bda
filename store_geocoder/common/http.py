"""JSON-over-HTTP fetching for geocoding datasets.

Requests to one host are spaced out by :class:`HostRateLimiter`; transient
failures (connection errors, timeouts, 408/425/429/5xx) are retried by
tenacity with jittered exponential backoff. Anything else surfaces as
:class:`HttpRequestError` carrying the status code, so callers can treat a 404
as "no such document".
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from store_geocoder.common.constants import USER_AGENT
from store_geocoder.common.errors import StageError

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 4
    multiplier: float = 0.5
    max_wait: float = 10.0


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableHttpError(HttpRequestError):
    pass


class HostRateLimiter:
    """Spaces requests to each host at least ``1 / rate_per_sec`` seconds apart."""

    def __init__(self, rate_per_sec: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = 1.0 / rate_per_sec if rate_per_sec > 0 else 0.0
        self.clock = clock
        self._next_slot: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, host: str) -> float:
        with self._lock:
            now = self.clock()
            slot = max(now, self._next_slot.get(host, now))
            self._next_slot[host] = slot + self.interval
        delay = slot - now
        if delay > 0:
            time.sleep(delay)
        return delay


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        rate_per_sec: float = 10.0,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
        self.limiter = HostRateLimiter(rate_per_sec)
        self._retrying = Retrying(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(initial=self.retry.multiplier, max=self.retry.max_wait, jitter=1.0),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()

    def _get_once(self, url: str, params: dict[str, Any] | None, headers: dict[str, str] | None) -> Any:
        self.limiter.wait(urlparse(url).netloc)
        try:
            response = self.session.request(
                method="GET",
                url=url,
                params=params,
                headers=headers,
                timeout=(self.timeout.connect, self.timeout.read),
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise RetryableHttpError(f"GET {url} failed: {exc}") from exc

        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"GET {url} returned retryable status {status}", status_code=status)
        if status >= 400:
            raise HttpRequestError(f"GET {url} returned status {status}", status_code=status)

        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}", status_code=status) from exc

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        # copy() gives each call its own retry state when workers share the client.
        return self._retrying.copy()(self._get_once, url, params, headers)
