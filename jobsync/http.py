from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set
from urllib.parse import urlsplit

import httpx

from jobsync.config.settings import HttpSettings
from jobsync.logging_utils import log_event

logger = logging.getLogger("jobsync.connectors")

# Public provider API hosts every connector talks to.
DEFAULT_ALLOWLIST_HOSTS = (
    "api.github.com",
    "boards-api.greenhouse.io",
    "api.lever.co",
    "api.ashbyhq.com",
    "apply.workable.com",
)
# Recruitee serves each board from its own subdomain.
DEFAULT_ALLOWLIST_SUFFIXES = (".recruitee.com",)


class JobSyncHttpError(RuntimeError):
    pass


class HostNotAllowedError(JobSyncHttpError):
    def __init__(self, host: str) -> None:
        super().__init__(f"Host not allowlisted: {host}")
        self.host = host


class FetchError(JobSyncHttpError):
    def __init__(self, url: str, status_code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def _host_of(url: str) -> str:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    return host


class PerHostRateLimiter:
    def __init__(
        self,
        *,
        min_interval_s: float,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._min_interval_s = max(0.0, float(min_interval_s))
        self._now = now
        self._sleep = sleep
        self._next_allowed: dict[str, float] = {}
        self._host_interval: dict[str, float] = {}

    def interval_for(self, host: str) -> float:
        return max(self._min_interval_s, self._host_interval.get(host, 0.0))

    def widen(self, host: str, interval_s: float) -> None:
        """Raise the pacing interval for one host (never lowers it)."""
        self._host_interval[host] = max(self._host_interval.get(host, 0.0), float(interval_s))

    def defer(self, host: str, until: float) -> None:
        self._next_allowed[host] = max(self._next_allowed.get(host, 0.0), until)

    def wait(self, host: str) -> None:
        interval = self.interval_for(host)
        ts = self._next_allowed.get(host, 0.0)
        now = self._now()
        if now < ts:
            self._sleep(ts - now)
        if interval > 0:
            self._next_allowed[host] = self._now() + interval


@dataclass(frozen=True)
class RateLimitInfo:
    remaining: Optional[int]
    reset_epoch_s: Optional[int]


@dataclass(frozen=True)
class JsonResponse:
    url: str
    status_code: int
    data: Any
    headers: Mapping[str, str]
    latency_ms: int
    rate_limit: RateLimitInfo


def _parse_int_header(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def parse_rate_limit_headers(headers: Mapping[str, str]) -> RateLimitInfo:
    return RateLimitInfo(
        remaining=_parse_int_header(headers.get("X-RateLimit-Remaining")),
        reset_epoch_s=_parse_int_header(headers.get("X-RateLimit-Reset")),
    )


class PoliteHttpClient:
    def __init__(
        self,
        *,
        user_agent: str,
        timeout_connect_s: float = 10.0,
        timeout_read_s: float = 20.0,
        rate_limit_per_host_s: float = 0.2,
        max_retries: int = 2,
        backoff_base_s: float = 0.5,
        backoff_max_s: float = 30.0,
        low_quota_threshold: int = 10,
        low_quota_interval_s: float = 2.0,
        require_allowlist: bool = True,
        allowlist_hosts: Optional[Iterable[str]] = None,
        allowlist_suffixes: Optional[Iterable[str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        now: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._ua = user_agent
        self._timeout = httpx.Timeout(
            connect=timeout_connect_s,
            read=timeout_read_s,
            write=timeout_read_s,
            pool=timeout_connect_s,
        )
        self._max_retries = max(0, int(max_retries))
        self._backoff_base_s = float(backoff_base_s)
        self._backoff_max_s = float(backoff_max_s)
        self._low_quota_threshold = int(low_quota_threshold)
        self._low_quota_interval_s = float(low_quota_interval_s)
        self._now = now
        self._wall_clock = wall_clock
        self._sleep = sleep
        self._rng = rng or random.Random()

        if allowlist_hosts is None:
            allowlist_hosts = DEFAULT_ALLOWLIST_HOSTS
        if allowlist_suffixes is None:
            allowlist_suffixes = DEFAULT_ALLOWLIST_SUFFIXES
        self._allowlist_hosts: Set[str] = {h.strip().lower() for h in allowlist_hosts if h and h.strip()}
        self._allowlist_suffixes = tuple(s.strip().lower() for s in allowlist_suffixes if s and s.strip())
        self._require_allowlist = bool(require_allowlist)

        self._rate_limiter = PerHostRateLimiter(
            min_interval_s=float(rate_limit_per_host_s),
            now=now,
            sleep=sleep,
        )

        self._client = httpx.Client(
            timeout=self._timeout,
            follow_redirects=False,  # enforce allowlist per redirect hop
            transport=transport,
            headers={
                "User-Agent": self._ua,
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_settings(
        cls,
        settings: HttpSettings,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "PoliteHttpClient":
        return cls(
            user_agent=settings.user_agent,
            timeout_connect_s=settings.timeout_connect_s,
            timeout_read_s=settings.timeout_read_s,
            rate_limit_per_host_s=settings.rate_limit_per_host_s,
            max_retries=settings.max_retries,
            backoff_base_s=settings.backoff_base_s,
            backoff_max_s=settings.backoff_max_s,
            low_quota_threshold=settings.low_quota_threshold,
            low_quota_interval_s=settings.low_quota_interval_s,
            require_allowlist=settings.require_allowlist,
            allowlist_hosts=list(DEFAULT_ALLOWLIST_HOSTS) + settings.extra_hosts,
            transport=transport,
            sleep=sleep,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PoliteHttpClient":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def pause(self, seconds: float) -> None:
        """Courtesy pause between pages, using the injected sleep."""
        if seconds > 0:
            self._sleep(seconds)

    def host_interval(self, url: str) -> float:
        return self._rate_limiter.interval_for(_host_of(url))

    def _host_allowed(self, host: str) -> bool:
        if host in self._allowlist_hosts:
            return True
        return any(host.endswith(suffix) for suffix in self._allowlist_suffixes)

    def _enforce_allowlist(self, url: str) -> None:
        host = _host_of(url)
        if not host:
            raise FetchError(url, None, f"Invalid URL (no host): {url}")
        if self._require_allowlist and not self._host_allowed(host):
            raise HostNotAllowedError(host)

    def _backoff(self, attempt: int) -> float:
        base = self._backoff_base_s * (2 ** max(0, attempt - 1))
        jitter = self._rng.random() * 0.25
        return min(self._backoff_max_s, base + jitter)

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code == 429 or 500 <= status_code <= 599

    def _parse_retry_after_s(self, value: Optional[str]) -> Optional[float]:
        if not value:
            return None
        value = value.strip()
        if not value:
            return None
        try:
            return min(self._backoff_max_s, float(value))
        except ValueError:
            return None

    def _observe_rate_limit(self, url: str, info: RateLimitInfo) -> None:
        if info.remaining is None or info.remaining >= self._low_quota_threshold:
            return
        host = _host_of(url)
        self._rate_limiter.widen(host, self._low_quota_interval_s)
        if info.remaining <= 0 and info.reset_epoch_s is not None:
            wait_s = min(self._backoff_max_s, max(0.0, info.reset_epoch_s - self._wall_clock()))
            self._rate_limiter.defer(host, self._now() + wait_s)
        log_event(
            logger,
            logging.WARNING,
            "github_rate_limit_low" if host == "api.github.com" else "rate_limit_low",
            host=host,
            remaining=info.remaining,
            reset=info.reset_epoch_s,
            interval_s=self._rate_limiter.interval_for(host),
        )

    def _request_with_retries(self, url: str, headers: Optional[Dict[str, str]]) -> httpx.Response:
        self._enforce_allowlist(url)
        host = _host_of(url)

        last_exc: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 2):
            try:
                self._rate_limiter.wait(host)
                resp = self._client.get(url, headers=headers)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_exc = e
                if attempt >= self._max_retries + 1:
                    raise FetchError(url, None, f"HTTP transport error for {url}: {e}") from e
                self._sleep(self._backoff(attempt))
                continue

            if self._is_retryable_status(resp.status_code) and attempt < self._max_retries + 1:
                retry_after = self._parse_retry_after_s(resp.headers.get("Retry-After"))
                self._sleep(retry_after if retry_after is not None else self._backoff(attempt))
                continue

            return resp

        raise FetchError(url, None, f"HTTP failed for {url}: {last_exc}")

    def _follow_redirects(
        self, url: str, headers: Optional[Dict[str, str]], *, max_redirects: int = 5
    ) -> httpx.Response:
        current = url
        for _ in range(max_redirects + 1):
            resp = self._request_with_retries(current, headers)
            if resp.status_code not in {301, 302, 303, 307, 308}:
                return resp

            location = resp.headers.get("Location")
            if not location:
                return resp

            # Resolve relative redirects against the current URL.
            next_url = str(resp.url.join(location))
            self._enforce_allowlist(next_url)
            current = next_url

        raise FetchError(url, None, f"Too many redirects for {url}")

    def get_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> JsonResponse:
        if params:
            url = str(httpx.URL(url, params={k: v for k, v in params.items() if v is not None}))
        self._enforce_allowlist(url)

        started = self._now()
        resp = self._follow_redirects(url, headers)
        latency_ms = int(round((self._now() - started) * 1000))

        rate_limit = parse_rate_limit_headers(resp.headers)
        self._observe_rate_limit(url, rate_limit)

        if resp.status_code >= 400:
            raise FetchError(url, int(resp.status_code), f"HTTP {resp.status_code} for {url}")

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FetchError(url, int(resp.status_code), f"Invalid JSON from {url}: {e}") from e

        return JsonResponse(
            url=str(resp.url),
            status_code=int(resp.status_code),
            data=data,
            headers=resp.headers,
            latency_ms=latency_ms,
            rate_limit=rate_limit,
        )

    @property
    def low_quota_threshold(self) -> int:
        return self._low_quota_threshold
