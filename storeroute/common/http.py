"""HTTP client with retries, timeouts, and host-aware rate limiting."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Mapping
from urllib.parse import urlparse

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from storeroute.common.constants import USER_AGENT
from storeroute.common.errors import StageError

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
DEFAULT_RATES_PER_SEC = {
    "store_search": 2.0,
    "store_details": 5.0,
}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 5.0
    read: float = 15.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    multiplier: float = 1.0
    max_wait: float = 10.0


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"


class RetryableHttpError(HttpRequestError):
    pass


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: float | None = None) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = capacity if capacity is not None else rate_per_sec
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self.lock = threading.Lock()

    def acquire(self, tokens: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.updated_at
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.updated_at = now
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                deficit = tokens - self.tokens
                wait_for = max(deficit / self.rate_per_sec, 0.01)
            time.sleep(wait_for)


class HostRateLimiter:
    def __init__(self, rates_per_sec: Mapping[str, float]) -> None:
        self.rates_per_sec = dict(rates_per_sec)
        self.buckets: dict[tuple[str, str], TokenBucket] = {}
        self.lock = threading.Lock()

    def acquire(self, source_type: str, host: str, tokens: float = 1.0) -> None:
        rate = self.rates_per_sec.get(source_type)
        if rate is None:
            return
        key = (source_type, host)
        with self.lock:
            bucket = self.buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(rate_per_sec=rate, capacity=max(rate, 1.0))
                self.buckets[key] = bucket
        bucket.acquire(tokens=tokens)


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        rates_per_sec: Mapping[str, float] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()
        self.limiter = HostRateLimiter(DEFAULT_RATES_PER_SEC if rates_per_sec is None else rates_per_sec)
        self.default_headers = dict(headers or {})

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, headers: Mapping[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        out.update(self.default_headers)
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status: {status}")
        if status >= 400:
            raise HttpRequestError(f"HTTP status: {status}")

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        source_type: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        req_timeout = timeout or self.timeout
        self.limiter.acquire(source_type, urlparse(url).netloc)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise RetryableHttpError(f"{type(exc).__name__} for {url}") from exc
        self._raise_for_status_or_retry(response)

        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}") from exc

    def request_json(
        self,
        method: str,
        url: str,
        *,
        source_type: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=1.0,
            ),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )
        def _wrapped() -> Any:
            return self._request_json(
                method,
                url,
                source_type=source_type,
                params=params,
                headers=headers,
                timeout=timeout,
            )

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        source_type: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        return self.request_json(
            "GET",
            url,
            source_type=source_type,
            params=params,
            headers=headers,
            timeout=timeout,
        )
