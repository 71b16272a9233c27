"""One rank query per grid point over a task-based provider.

Created -> Polling -> Ready | Failed | TimedOut. Every wait goes through the
point's Deadline, so a grid deadline or caller cancel interrupts it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Tuple

import requests

from . import config
from .cache import ResultCache, make_query_cache_key
from .deadline import Deadline
from .http import RequestMetrics
from .matcher import competitors_above, match_business
from .models import ErrorKind, GridPoint, GridResult, RankQueryTask, SearchResultItem, TaskState
from .provider import (
    FETCH_ITEMS,
    FETCH_MALFORMED,
    FETCH_NOT_FOUND,
    FETCH_NOT_READY,
    FetchOutcome,
    ProviderError,
    RankingProvider,
    SubmissionError,
    build_task_body,
    truncate_payload,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PollPolicy:
    initial_wait: float = 15.0
    backoff_start: float = 5.0
    backoff_max: float = 30.0
    task_deadline: float = 90.0
    submit_max_attempts: int = 2

    @classmethod
    def from_config(cls) -> "PollPolicy":
        return cls(
            initial_wait=config.POLL_INITIAL_WAIT_SECONDS,
            backoff_start=config.POLL_BACKOFF_START_SECONDS,
            backoff_max=config.POLL_BACKOFF_MAX_SECONDS,
            task_deadline=config.TASK_DEADLINE_SECONDS,
            submit_max_attempts=config.SUBMIT_MAX_ATTEMPTS,
        )

    def backoff_delays(self) -> Iterator[float]:
        delay = self.backoff_start
        while True:
            yield min(delay, self.backoff_max)
            delay *= 2


class RankQueryClient:
    def __init__(
        self,
        provider: RankingProvider,
        policy: Optional[PollPolicy] = None,
        device: Optional[str] = None,
        depth: Optional[int] = None,
        cache: Optional[ResultCache] = None,
        metrics: Optional[RequestMetrics] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.provider = provider
        self.policy = policy or PollPolicy.from_config()
        self.device = device or config.DEVICE
        self.depth = int(depth or config.SEARCH_DEPTH)
        self.cache = cache
        self.metrics = metrics
        self.now = now

    def query(self, keyword: str, point: GridPoint, business_name: str, deadline: Deadline) -> GridResult:
        _, result = self.query_task(keyword, point, business_name, deadline)
        return result

    def query_task(
        self,
        keyword: str,
        point: GridPoint,
        business_name: str,
        deadline: Deadline,
    ) -> Tuple[RankQueryTask, GridResult]:
        task = RankQueryTask(keyword=keyword, point=point, created_at=self.now())

        cache_key = self._cache_key(keyword, point)
        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                items, volume = cached
                if self.metrics is not None:
                    self.metrics.inc("cache_hit")
                task.advance(TaskState.READY)
                return task, self._resolved(point, items, business_name, volume)

        task_deadline = deadline.child(self.policy.task_deadline)
        if task_deadline.cancelled:
            task.advance(TaskState.FAILED)
            return task, GridResult(point=point, error=ErrorKind.CANCELLED)

        if not self._submit(task, task_deadline):
            task.advance(TaskState.FAILED)
            return task, GridResult(point=point, error=ErrorKind.SUBMISSION_FAILED)
        task.advance(TaskState.POLLING)

        outcome = self._poll(task, task_deadline)
        if outcome is None:
            task.advance(TaskState.FAILED)
            logger.info("Point %s cancelled (task %s)", point.id, task.task_id)
            return task, GridResult(point=point, error=ErrorKind.CANCELLED)

        if outcome.status == FETCH_ITEMS:
            task.advance(TaskState.READY)
            # A stopped grid may already have closed the cache.
            if cache_key is not None and not task_deadline.cancelled:
                self.cache.set(cache_key, outcome.items, outcome.search_volume)
            return task, self._resolved(point, outcome.items, business_name, outcome.search_volume)

        if outcome.status == FETCH_MALFORMED:
            task.advance(TaskState.FAILED)
            logger.error(
                "Malformed response for point %s (task %s): %s; payload=%s",
                point.id,
                task.task_id,
                outcome.detail,
                truncate_payload(outcome.payload),
            )
            return task, GridResult(point=point, error=ErrorKind.MALFORMED_RESPONSE)

        task.advance(TaskState.TIMED_OUT)
        logger.warning(
            "Point %s timed out (task %s, last status %s)", point.id, task.task_id, outcome.status
        )
        return task, GridResult(point=point, error=ErrorKind.TIMED_OUT)

    def _resolved(
        self,
        point: GridPoint,
        items: List[SearchResultItem],
        business_name: str,
        search_volume: Optional[int],
    ) -> GridResult:
        rank = match_business(items, business_name)
        return GridResult(
            point=point,
            rank=rank,
            search_volume=search_volume,
            competitors=competitors_above(items, rank, config.COMPETITORS_PER_POINT),
        )

    def _cache_key(self, keyword: str, point: GridPoint) -> Optional[str]:
        if self.cache is None:
            return None
        location_code = getattr(self.provider, "location_code", None)
        body = build_task_body(keyword, point, self.device, self.depth, location_code)
        endpoint = getattr(self.provider, "serp_path", type(self.provider).__name__)
        return make_query_cache_key(endpoint, body)

    def _submit(self, task: RankQueryTask, deadline: Deadline) -> bool:
        attempts = max(1, self.policy.submit_max_attempts)
        for attempt in range(1, attempts + 1):
            if deadline.cancelled:
                return False
            try:
                task.task_id = self.provider.submit_task(
                    task.keyword, task.point, self.device, self.depth
                )
                return True
            except SubmissionError as exc:
                if exc.transient and attempt < attempts:
                    logger.warning(
                        "Submit for point %s failed (%s), retrying (attempt %s/%s)",
                        task.point.id,
                        exc,
                        attempt,
                        attempts,
                    )
                    if self.metrics is not None:
                        self.metrics.inc("retry")
                    continue
                logger.warning("Submit for point %s failed: %s", task.point.id, exc)
                return False
        return False

    def _ready(self, task: RankQueryTask) -> bool:
        try:
            return bool(self.provider.is_ready(task.task_id))
        except (ProviderError, requests.RequestException) as exc:
            logger.debug("Ready check for task %s failed: %s", task.task_id, exc)
            return False

    def _fetch(self, task: RankQueryTask) -> FetchOutcome:
        try:
            return self.provider.fetch_result(task.task_id)
        except (ProviderError, requests.RequestException) as exc:
            return FetchOutcome.not_ready(str(exc))

    def _poll(self, task: RankQueryTask, deadline: Deadline) -> Optional[FetchOutcome]:
        """Wait for the task; None means cancelled."""
        if not deadline.sleep(self.policy.initial_wait):
            return None
        delays = self.policy.backoff_delays()
        while True:
            if deadline.cancelled:
                return None
            if deadline.expired:
                # Providers do not always flag tasks as ready; try once anyway.
                outcome = self._fetch(task)
                if outcome.status in (FETCH_NOT_READY, FETCH_NOT_FOUND):
                    logger.debug("Final fetch for task %s: %s", task.task_id, outcome.detail)
                return outcome
            if self._ready(task):
                outcome = self._fetch(task)
                if outcome.status not in (FETCH_NOT_READY, FETCH_NOT_FOUND):
                    return outcome
            if not deadline.sleep(next(delays)):
                return None
