"""Summary metrics over a finished (or partial) grid.

Pure functions: the same results always give the same AggregateMetrics.
Errored points never enter a denominator; they show up only through the
completion rate. The distribution covers every resolved point (Unranked in
">20"); the rank means and TSS cover ranked points only.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from . import config
from .config import VisibilityWeights
from .models import AggregateMetrics, GridResult

BUCKETS = ("1-3", "4-10", "11-20", ">20")


def _bucket(rank: Optional[int]) -> str:
    if rank is None or rank > 20:
        return ">20"
    if rank <= 3:
        return "1-3"
    if rank <= 10:
        return "4-10"
    return "11-20"


def round_half_up_percent(count: int, total: int) -> int:
    """Integer percentage of count/total, halves rounded up."""
    if total <= 0:
        return 0
    return (200 * count + total) // (2 * total)


def rank_score(value: float, scale: Optional[float] = None) -> float:
    """Map an average rank onto 0-100; rank 0 scores 100, `scale` and worse score 0."""
    scale = config.RANK_SCALE if scale is None else scale
    if scale <= 0:
        return 0.0
    score = 100.0 - (value * 100.0 / scale)
    return max(0.0, min(100.0, score))


def visibility_score(
    afpr: Optional[float],
    grm: Optional[float],
    tss: float,
    weights: Optional[VisibilityWeights] = None,
) -> float:
    """Weighted blend of rank scores and top-spot share.

    visibility = w.afpr * rank_score(afpr) + w.grm * rank_score(grm) + w.tss * tss

    An undefined AFPR or GRM (None) contributes nothing. Weights are
    normalized, so they need not sum to 1.
    """
    w = weights or config.VISIBILITY_WEIGHTS
    total_weight = w.afpr + w.grm + w.tss
    if total_weight <= 0:
        return 0.0
    afpr_part = rank_score(afpr) if afpr is not None else 0.0
    grm_part = rank_score(grm) if grm is not None else 0.0
    tss_part = max(0.0, min(100.0, tss))
    blended = w.afpr * afpr_part + w.grm * grm_part + w.tss * tss_part
    return round(blended / total_weight, 2)


def metric_band(value: float, kind: str) -> str:
    """Rate a metric as good / warning / poor from the configured thresholds.

    kind is "rank" (lower is better, e.g. AFPR/GRM) or "share" (higher is
    better, e.g. TSS or the visibility score).
    """
    if kind == "rank":
        if value <= 0:
            return "poor"
        if value < config.RANK_GOOD_BELOW:
            return "good"
        if value < config.RANK_WARNING_BELOW:
            return "warning"
        return "poor"
    if kind == "share":
        if value > config.SHARE_GOOD_ABOVE:
            return "good"
        if value > config.SHARE_WARNING_ABOVE:
            return "warning"
        return "poor"
    raise ValueError(f"Unknown metric kind: {kind}")


def _mean(values: List[int]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def _weak_key(result: GridResult):
    # Unranked sorts ahead of every numeric rank (worst first).
    if result.rank is None:
        return (0, 0, result.point.id)
    return (1, -result.rank, result.point.id)


def aggregate(
    results: Sequence[GridResult],
    weights: Optional[VisibilityWeights] = None,
) -> AggregateMetrics:
    resolved = [r for r in results if r.ok]
    ranked = [r for r in resolved if r.rank is not None]
    ranks = [r.rank for r in ranked]

    afpr = _mean([rank for rank in ranks if rank <= config.FIRST_PAGE_MAX_RANK])
    grm = _mean(ranks)

    counts: Dict[str, int] = {bucket: 0 for bucket in BUCKETS}
    for r in resolved:
        counts[_bucket(r.rank)] += 1
    total = len(resolved)
    distribution = {bucket: round_half_up_percent(counts[bucket], total) for bucket in BUCKETS}

    top_spots = sum(1 for rank in ranks if rank <= config.TOP_SPOT_MAX_RANK)
    tss = (top_spots * 100.0 / len(ranks)) if ranks else 0.0

    top_points = sorted(ranked, key=lambda r: (r.rank, r.point.id))[: config.HIGHLIGHT_POINTS]
    weak_points = sorted(resolved, key=_weak_key)[: config.HIGHLIGHT_POINTS]

    return AggregateMetrics(
        afpr=afpr if afpr is not None else 0.0,
        afpr_defined=afpr is not None,
        grm=grm if grm is not None else 0.0,
        grm_defined=grm is not None,
        tss=tss,
        visibility_score=visibility_score(afpr, grm, tss, weights),
        distribution=distribution,
        top_points=top_points,
        weak_points=weak_points,
        resolved_count=total,
        ranked_count=len(ranked),
        error_count=len(results) - total,
    )
