"""Fan-out of point queries over a bounded worker pool."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from . import config
from .deadline import Deadline
from .models import ErrorKind, GridPoint, GridResult

logger = logging.getLogger(__name__)


class PointQueryClient(Protocol):
    def query(self, keyword: str, point: GridPoint, business_name: str, deadline: Deadline) -> GridResult:
        ...


@dataclass
class GridRun:
    results: List[GridResult]
    completion_rate: float
    cancelled: bool
    deadline_hit: bool

    @property
    def completed_count(self) -> int:
        return sum(1 for r in self.results if r.ok)


def completion_rate(results: Sequence[GridResult]) -> float:
    if not results:
        return 0.0
    return sum(1 for r in results if r.ok) / len(results)


class _ResultCollector:
    """Thread-safe point id -> result map that stops accepting once closed."""

    def __init__(self, on_result: Optional[Callable[[GridResult, int, int], None]], total: int) -> None:
        self._lock = threading.Lock()
        self._results: Dict[int, GridResult] = {}
        self._closed = False
        self._on_result = on_result
        self._total = total

    def add(self, result: GridResult) -> bool:
        with self._lock:
            if self._closed or result.point.id in self._results:
                return False
            self._results[result.point.id] = result
            done = len(self._results)
        if self._on_result is not None:
            self._on_result(result, done, self._total)
        return True

    def close(self) -> Dict[int, GridResult]:
        with self._lock:
            self._closed = True
            return dict(self._results)


class GridOrchestrator:
    def __init__(
        self,
        client: PointQueryClient,
        concurrency: int = 5,
        on_result: Optional[Callable[[GridResult, int, int], None]] = None,
        tick_seconds: Optional[float] = None,
    ) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.client = client
        self.concurrency = int(concurrency)
        self.on_result = on_result
        self.tick_seconds = config.ORCHESTRATOR_TICK_SECONDS if tick_seconds is None else tick_seconds

    def _worker(
        self,
        collector: _ResultCollector,
        keyword: str,
        point: GridPoint,
        business_name: str,
        deadline: Deadline,
    ) -> None:
        if deadline.cancelled:
            return
        try:
            result = self.client.query(keyword, point, business_name, deadline)
        except Exception:
            # A broken point must not take the grid down with it.
            logger.exception("Point %s query raised", point.id)
            result = GridResult(point=point, error=ErrorKind.MALFORMED_RESPONSE)
        if result.point.id != point.id:
            result = replace(result, point=point)
        collector.add(result)

    def run(
        self,
        points: Sequence[GridPoint],
        keyword: str,
        business_name: str,
        deadline: Deadline,
    ) -> GridRun:
        """Query every point; return whatever finished by the deadline.

        Points still pending when the deadline passes are reported as
        TIMED_OUT, or CANCELLED if the caller cancelled first. Results come
        back in grid (point id) order.
        """
        total = len(points)
        collector = _ResultCollector(self.on_result, total)
        if total == 0:
            return GridRun(results=[], completion_rate=0.0, cancelled=deadline.cancelled, deadline_hit=False)

        # Workers wait on a private event so stopping them never sets the caller's.
        stop = deadline.detached()
        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="geogrid")
        futures: List[Future] = []
        caller_cancelled = False
        deadline_hit = False
        try:
            for point in points:
                futures.append(
                    executor.submit(self._worker, collector, keyword, point, business_name, stop)
                )
            pending = set(futures)
            while pending:
                if deadline.cancelled:
                    caller_cancelled = True
                    break
                if deadline.expired:
                    deadline_hit = True
                    break
                _, pending = wait(
                    pending,
                    timeout=min(self.tick_seconds, deadline.remaining()),
                    return_when=FIRST_COMPLETED,
                )
        finally:
            # Nothing is accepted past this point.
            collected = collector.close()
            # Wakes every sleeping worker; queued ones return immediately.
            stop.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

        missing_kind = ErrorKind.CANCELLED if caller_cancelled else ErrorKind.TIMED_OUT
        results: List[GridResult] = []
        for point in points:
            result = collected.get(point.id)
            if result is None:
                result = GridResult(point=point, error=missing_kind)
            results.append(result)

        rate = completion_rate(results)
        if caller_cancelled:
            logger.warning("Grid cancelled: %s/%s points completed", len(collected), total)
        elif deadline_hit:
            logger.warning("Grid deadline reached: %s/%s points completed", len(collected), total)
        return GridRun(
            results=results,
            completion_rate=rate,
            cancelled=caller_cancelled,
            deadline_hit=deadline_hit,
        )
