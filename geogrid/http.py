"""HTTP client with retry/backoff and request counters."""
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


@dataclass
class RequestMetrics:
    submissions: int = 0
    ready_checks: int = 0
    fetches: int = 0
    retries: int = 0
    cache_hits: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, kind: str) -> None:
        with self._lock:
            if kind == "submit":
                self.submissions += 1
            elif kind == "ready":
                self.ready_checks += 1
            elif kind == "fetch":
                self.fetches += 1
            elif kind == "retry":
                self.retries += 1
            elif kind == "cache_hit":
                self.cache_hits += 1
            else:
                raise ValueError(f"Unknown request kind: {kind}")

    def as_dict(self) -> Dict[str, int]:
        with self._lock:
            return {
                "submissions": self.submissions,
                "ready_checks": self.ready_checks,
                "fetches": self.fetches,
                "retries": self.retries,
                "cache_hits": self.cache_hits,
            }


class HttpClient:
    def __init__(
        self,
        login: str,
        password: str,
        timeout: int = 20,
        retry_max: int = 2,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.timeout = timeout
        self.retry_max = max(1, int(retry_max))
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.metrics = metrics
        self.session = requests.Session()
        self.session.auth = (login, password)

    def post_json(
        self,
        url: str,
        body: Any,
        max_attempts: Optional[int] = None,
    ) -> Dict[str, Any]:
        return self._request("POST", url, body, max_attempts)

    def get_json(self, url: str, max_attempts: Optional[int] = None) -> Dict[str, Any]:
        return self._request("GET", url, None, max_attempts)

    def _request(
        self,
        method: str,
        url: str,
        body: Any,
        max_attempts: Optional[int],
    ) -> Dict[str, Any]:
        attempts = self.retry_max if max_attempts is None else max(1, int(max_attempts))
        headers = {"Content-Type": "application/json"}
        for attempt in range(1, attempts + 1):
            try:
                if method == "POST":
                    resp = self.session.post(url, json=body, headers=headers, timeout=self.timeout)
                else:
                    resp = self.session.get(url, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                if attempt >= attempts:
                    raise
                logger.warning("%s %s failed (%s), attempt %s", method, url, exc, attempt)
                self._count_retry()
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if 200 <= status < 300:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", url)
                    raise

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= attempts:
                    resp.raise_for_status()
                self._count_retry()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            resp.raise_for_status()
            raise requests.HTTPError(f"HTTP {status} from {url}", response=resp)

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _count_retry(self) -> None:
        if self.metrics is not None:
            self.metrics.inc("retry")

    def _sleep_backoff(self, attempt: int) -> None:
        if self.backoff_base <= 0:
            return
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
