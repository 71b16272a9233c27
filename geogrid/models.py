"""Data model for grid checks."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class GridConfigError(ValueError):
    """Invalid grid request; raised before any query is dispatched."""


class TaskState(str, Enum):
    CREATED = "created"
    POLLING = "polling"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({TaskState.READY, TaskState.FAILED, TaskState.TIMED_OUT})


class ErrorKind(str, Enum):
    SUBMISSION_FAILED = "submission_failed"
    TIMED_OUT = "timed_out"
    MALFORMED_RESPONSE = "malformed_response"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GridPoint:
    id: int
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class SearchResultItem:
    position: int
    title: str
    url: str = ""


@dataclass
class RankQueryTask:
    """Private state of one point query. Only advance() mutates it."""

    keyword: str
    point: GridPoint
    created_at: datetime
    task_id: Optional[str] = None
    state: TaskState = TaskState.CREATED
    history: List[TaskState] = field(default_factory=lambda: [TaskState.CREATED])

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: TaskState) -> None:
        if self.terminal:
            raise RuntimeError(
                f"Task {self.task_id or '<unsubmitted>'} already {self.state.value}; "
                f"cannot move to {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)


@dataclass(frozen=True)
class GridResult:
    point: GridPoint
    rank: Optional[int] = None
    search_volume: Optional[int] = None
    error: Optional[ErrorKind] = None
    # Titles listed above the business (the leaders when it is unranked).
    competitors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def unranked(self) -> bool:
        return self.error is None and self.rank is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "point": self.point.to_dict(),
            "rank": self.rank,
            "search_volume": self.search_volume,
            "error": self.error.value if self.error else None,
            "competitors": list(self.competitors),
        }


@dataclass(frozen=True)
class AggregateMetrics:
    afpr: float
    afpr_defined: bool
    grm: float
    grm_defined: bool
    tss: float
    visibility_score: float
    distribution: Dict[str, int]
    top_points: List[GridResult]
    weak_points: List[GridResult]
    resolved_count: int
    ranked_count: int
    error_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "afpr": self.afpr,
            "afpr_defined": self.afpr_defined,
            "grm": self.grm,
            "grm_defined": self.grm_defined,
            "tss": self.tss,
            "visibility_score": self.visibility_score,
            "distribution": dict(self.distribution),
            "top_points": [r.to_dict() for r in self.top_points],
            "weak_points": [r.to_dict() for r in self.weak_points],
            "resolved_count": self.resolved_count,
            "ranked_count": self.ranked_count,
            "error_count": self.error_count,
        }


@dataclass
class GeoGridReport:
    keyword: str
    business_name: str
    center_lat: float
    center_lng: float
    radius_km: float
    grid_size: int
    shape: str
    results: List[GridResult]
    metrics: AggregateMetrics
    completion_rate: float
    cancelled: bool = False
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    request_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "business_name": self.business_name,
            "center": {"lat": self.center_lat, "lng": self.center_lng},
            "radius_km": self.radius_km,
            "grid_size": self.grid_size,
            "shape": self.shape,
            "completion_rate": self.completion_rate,
            "cancelled": self.cancelled,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "request_counts": dict(self.request_counts),
            "metrics": self.metrics.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }
