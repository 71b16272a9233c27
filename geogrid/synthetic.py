"""Deterministic stand-in for the ranking provider.

Rankings get worse with distance from the center plus seeded noise, so the
same keyword always yields the same grid. Used for demos and offline tests;
it goes through the same RankQueryClient/orchestrator path as the real
provider.
"""
from __future__ import annotations

import hashlib
import random
import threading
from typing import Dict, Optional

from .geo import haversine_km
from .models import GridPoint, SearchResultItem
from .provider import FetchOutcome

COMPETITOR_NAMES = (
    "Competitor A",
    "Competitor B",
    "Competitor C",
    "Competitor D",
    "Competitor E",
    "Competitor F",
)


def keyword_seed(keyword: str) -> int:
    digest = hashlib.sha256(keyword.strip().lower().encode("utf-8")).hexdigest()
    return int(digest[:16], 16)


class SyntheticProvider:
    def __init__(
        self,
        center_lat: float,
        center_lng: float,
        radius_km: float,
        business_name: str,
        base_rank: int = 2,
        max_variation: int = 10,
        seed: Optional[int] = None,
    ) -> None:
        self.center_lat = center_lat
        self.center_lng = center_lng
        self.radius_km = radius_km
        self.business_name = business_name
        self.base_rank = base_rank
        self.max_variation = max_variation
        self.seed = seed
        self._tasks: Dict[str, Dict[str, object]] = {}
        self._submitted = 0
        self._lock = threading.Lock()

    def _rng(self, keyword: str, point: GridPoint) -> random.Random:
        base = self.seed if self.seed is not None else keyword_seed(keyword)
        return random.Random(f"{base}:{point.id}:{point.lat:.6f}:{point.lng:.6f}")

    def simulated_rank(self, keyword: str, point: GridPoint) -> int:
        rng = self._rng(keyword, point)
        if self.radius_km > 0:
            distance = haversine_km(self.center_lat, self.center_lng, point.lat, point.lng)
            normalized = min(distance / self.radius_km, 1.0)
        else:
            normalized = 0.0
        variation = int(normalized * self.max_variation)
        return max(1, self.base_rank + variation + rng.randint(-1, 3))

    def build_items(self, keyword: str, point: GridPoint, depth: int) -> list:
        rng = self._rng(keyword, point)
        rank = self.simulated_rank(keyword, point)
        items = []
        for position in range(1, depth + 1):
            if position == rank:
                title = f"{self.business_name} - {keyword.title()}"
            else:
                competitor = COMPETITOR_NAMES[rng.randrange(len(COMPETITOR_NAMES))]
                title = f"{competitor} {position}"
            slug = title.lower().replace(" ", "-")
            items.append(SearchResultItem(position=position, title=title, url=f"https://example.com/{slug}"))
        return items

    def search_volume(self, keyword: str, point: GridPoint) -> int:
        rng = self._rng(keyword, point)
        rank = self.simulated_rank(keyword, point)
        return max(0, 1000 - rank * 30 + rng.randrange(200))

    def submit_task(self, keyword: str, point: GridPoint, device: str, depth: int) -> str:
        with self._lock:
            self._submitted += 1
            task_id = f"synthetic-{self._submitted:05d}"
            self._tasks[task_id] = {"keyword": keyword, "point": point, "depth": depth}
        return task_id

    def pending_count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def is_ready(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tasks

    def fetch_result(self, task_id: str) -> FetchOutcome:
        with self._lock:
            # Results are served once, like a collected provider task.
            task = self._tasks.pop(task_id, None)
        if task is None:
            return FetchOutcome.not_found(task_id)
        keyword = str(task["keyword"])
        point = task["point"]
        depth = int(task["depth"])
        return FetchOutcome.found(
            self.build_items(keyword, point, depth),
            search_volume=self.search_volume(keyword, point),
        )
