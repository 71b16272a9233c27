"""Entry point: one geo-grid rank check, end to end."""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from . import config
from .cache import ResultCache
from .config import VisibilityWeights
from .deadline import Clock, Deadline, Sleeper, event_sleep
from .geo import generate_grid
from .http import RequestMetrics
from .metrics import aggregate
from .models import GeoGridReport, GridConfigError, GridResult
from .orchestrator import GridOrchestrator
from .provider import DataForSeoProvider, RankingProvider
from .rank_client import PollPolicy, RankQueryClient

logger = logging.getLogger(__name__)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def run_geo_grid_check(
    keyword: str,
    business_name: str,
    center_lat: float,
    center_lng: float,
    radius_km: Optional[float] = None,
    grid_size: Optional[int] = None,
    shape: Optional[str] = None,
    concurrency: Optional[int] = None,
    deadline_seconds: Optional[float] = None,
    provider: Optional[RankingProvider] = None,
    cancel_event: Optional[threading.Event] = None,
    cache: Optional[ResultCache] = None,
    metrics: Optional[RequestMetrics] = None,
    policy: Optional[PollPolicy] = None,
    weights: Optional[VisibilityWeights] = None,
    on_result: Optional[Callable[[GridResult, int, int], None]] = None,
    clock: Clock = time.monotonic,
    sleeper: Sleeper = event_sleep,
) -> GeoGridReport:
    """Run a rank check for `keyword` over a grid around (center_lat, center_lng).

    Configuration errors raise GridConfigError before anything is
    dispatched. Point-level failures never raise: they come back as error
    entries in report.results and lower report.completion_rate. Setting
    `cancel_event` stops the run early and returns the partial grid.

    provider defaults to DataForSeoProvider built from the environment.
    """
    radius_km = config.DEFAULT_RADIUS_KM if radius_km is None else radius_km
    grid_size = config.DEFAULT_GRID_SIZE if grid_size is None else grid_size
    shape = shape or config.DEFAULT_SHAPE
    concurrency = config.DEFAULT_CONCURRENCY if concurrency is None else concurrency
    deadline_seconds = config.GRID_DEADLINE_SECONDS if deadline_seconds is None else deadline_seconds

    if not keyword or not keyword.strip():
        raise GridConfigError("keyword must not be blank")
    if not business_name or not business_name.strip():
        raise GridConfigError("business_name must not be blank")
    if not isinstance(concurrency, int) or concurrency <= 0:
        raise GridConfigError(f"concurrency must be a positive integer, got {concurrency!r}")
    if deadline_seconds is not None and deadline_seconds <= 0:
        raise GridConfigError(f"deadline_seconds must be positive, got {deadline_seconds!r}")

    points = generate_grid(center_lat, center_lng, radius_km, grid_size, shape)
    if not points:
        logger.warning("%s grid of size %s places no points; nothing to query", shape, grid_size)

    metrics = metrics if metrics is not None else RequestMetrics()
    if provider is None:
        provider = DataForSeoProvider.from_env(metrics=metrics)

    client = RankQueryClient(provider, policy=policy, cache=cache, metrics=metrics)
    orchestrator = GridOrchestrator(client, concurrency=concurrency, on_result=on_result)
    deadline = Deadline(deadline_seconds, cancel_event=cancel_event, clock=clock, sleeper=sleeper)

    started_at = _utc_iso()
    logger.info(
        "Grid check '%s' for %s: %s points (%s, N=%s, %.2f km), concurrency %s",
        keyword,
        business_name,
        len(points),
        shape,
        grid_size,
        radius_km,
        concurrency,
    )
    run = orchestrator.run(points, keyword.strip(), business_name.strip(), deadline)
    summary = aggregate(run.results, weights)
    finished_at = _utc_iso()
    logger.info(
        "Grid check done: %s/%s completed (%.0f%%), AFPR %.2f, TSS %.1f%%",
        run.completed_count,
        len(points),
        run.completion_rate * 100,
        summary.afpr,
        summary.tss,
    )

    return GeoGridReport(
        keyword=keyword.strip(),
        business_name=business_name.strip(),
        center_lat=float(center_lat),
        center_lng=float(center_lng),
        radius_km=float(radius_km),
        grid_size=grid_size,
        shape=shape,
        results=run.results,
        metrics=summary,
        completion_rate=run.completion_rate,
        cancelled=run.cancelled,
        started_at=started_at,
        finished_at=finished_at,
        request_counts=metrics.as_dict(),
    )
