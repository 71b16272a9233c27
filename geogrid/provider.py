"""Ranking provider contract and the DataForSEO task-based implementation.

A provider runs one asynchronous search task per grid point:

    submit_task(keyword, point, device, depth) -> task id
    is_ready(task_id)                          -> hint only, not authoritative
    fetch_result(task_id)                      -> FetchOutcome

Raw payloads are parsed into SearchResultItem at this boundary; anything
outside the expected shape becomes a "malformed" outcome instead of leaking
half-parsed dicts further down.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import requests

from . import config
from .http import HttpClient, RequestMetrics
from .models import GridPoint, SearchResultItem

logger = logging.getLogger(__name__)

FETCH_ITEMS = "items"
FETCH_NOT_READY = "not_ready"
FETCH_NOT_FOUND = "not_found"
FETCH_MALFORMED = "malformed"

_NOT_READY_CODES = {config.STATUS_TASK_HANDED, config.STATUS_TASK_IN_QUEUE}
_NOT_FOUND_CODES = {config.STATUS_NOT_FOUND, 40401}


class ProviderError(RuntimeError):
    pass


class SubmissionError(ProviderError):
    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class MalformedResponseError(ProviderError):
    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


@dataclass
class FetchOutcome:
    status: str
    items: List[SearchResultItem] = field(default_factory=list)
    search_volume: Optional[int] = None
    detail: str = ""
    payload: Any = None

    @classmethod
    def found(cls, items: List[SearchResultItem], search_volume: Optional[int] = None) -> "FetchOutcome":
        return cls(FETCH_ITEMS, items=list(items), search_volume=search_volume)

    @classmethod
    def not_ready(cls, detail: str = "") -> "FetchOutcome":
        return cls(FETCH_NOT_READY, detail=detail)

    @classmethod
    def not_found(cls, detail: str = "") -> "FetchOutcome":
        return cls(FETCH_NOT_FOUND, detail=detail)

    @classmethod
    def malformed(cls, detail: str, payload: Any = None) -> "FetchOutcome":
        return cls(FETCH_MALFORMED, detail=detail, payload=payload)


class RankingProvider(Protocol):
    def submit_task(self, keyword: str, point: GridPoint, device: str, depth: int) -> str:
        ...

    def is_ready(self, task_id: str) -> bool:
        ...

    def fetch_result(self, task_id: str) -> FetchOutcome:
        ...


def truncate_payload(payload: Any, limit: int = 500) -> str:
    try:
        text = json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = repr(payload)
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def build_task_body(
    keyword: str,
    point: Optional[GridPoint],
    device: str,
    depth: int,
    location_code: Optional[int] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "keyword": keyword,
        "language_code": config.LANGUAGE_CODE,
        "device": device,
        "os": config.DEVICE_OS,
        "depth": int(depth),
    }
    if location_code is not None or point is None:
        body["location_code"] = int(location_code or config.DEFAULT_LOCATION_CODE)
    else:
        coordinate = f"{point.lat:.7f},{point.lng:.7f}"
        if config.COORDINATE_SUFFIX:
            coordinate = f"{coordinate},{config.COORDINATE_SUFFIX}"
        body["location_coordinate"] = coordinate
    if config.TASK_BODY_EXTRA:
        body.update(config.TASK_BODY_EXTRA)
    return body


def _first_task(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise MalformedResponseError("response body is not an object", payload)
    status = payload.get("status_code", config.STATUS_OK)
    if status != config.STATUS_OK:
        raise MalformedResponseError(
            f"API error {status}: {payload.get('status_message', 'Unknown')}", payload
        )
    tasks = payload.get("tasks")
    if not isinstance(tasks, list) or not tasks or not isinstance(tasks[0], dict):
        raise MalformedResponseError("response has no tasks", payload)
    return tasks[0]


def parse_task_post_response(payload: Any) -> str:
    try:
        task = _first_task(payload)
    except MalformedResponseError as exc:
        raise SubmissionError(str(exc)) from exc
    status = task.get("status_code", config.STATUS_TASK_CREATED)
    if status not in (config.STATUS_OK, config.STATUS_TASK_CREATED):
        raise SubmissionError(f"task rejected {status}: {task.get('status_message', '')}")
    task_id = task.get("id")
    if not isinstance(task_id, str) or not task_id:
        raise SubmissionError("no task id in response")
    return task_id


def parse_tasks_ready_response(payload: Any) -> List[str]:
    ids: List[str] = []
    if not isinstance(payload, dict):
        return ids
    for task in payload.get("tasks") or []:
        if not isinstance(task, dict):
            continue
        for entry in task.get("result") or []:
            if isinstance(entry, dict) and entry.get("id"):
                ids.append(str(entry["id"]))
    return ids


def _item_position(item: Dict[str, Any]) -> Optional[int]:
    for key in ("rank_group", "rank_absolute", "position"):
        value = item.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return None


def parse_result_items(raw_items: Any) -> List[SearchResultItem]:
    """Strict item parsing; None means an empty (but valid) result."""
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise MalformedResponseError("items is not a list", raw_items)
    items: List[SearchResultItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise MalformedResponseError("result item is not an object", raw)
        item_type = raw.get("type")
        if item_type is not None and item_type not in config.RESULT_ITEM_TYPES:
            continue
        position = _item_position(raw)
        if position is None or position < 1:
            raise MalformedResponseError("result item has no usable position", raw)
        title = raw.get("title") or ""
        url = raw.get("url") or ""
        if not isinstance(title, str) or not isinstance(url, str):
            raise MalformedResponseError("result item has non-text title/url", raw)
        items.append(SearchResultItem(position=position, title=title, url=url))
    items.sort(key=lambda it: it.position)
    return items


def parse_task_get_response(payload: Any) -> FetchOutcome:
    try:
        task = _first_task(payload)
    except MalformedResponseError as exc:
        return FetchOutcome.malformed(str(exc), payload)

    status = task.get("status_code")
    message = str(task.get("status_message") or "")
    if status in _NOT_READY_CODES or message == "Task In Progress.":
        return FetchOutcome.not_ready(message)
    if status in _NOT_FOUND_CODES:
        return FetchOutcome.not_found(message)
    if status != config.STATUS_OK:
        return FetchOutcome.malformed(f"task error {status}: {message}", payload)

    result = task.get("result")
    if not result:
        return FetchOutcome.found([])
    if not isinstance(result, list) or not isinstance(result[0], dict):
        return FetchOutcome.malformed("task result is not a list of objects", payload)
    try:
        items = parse_result_items(result[0].get("items"))
    except MalformedResponseError as exc:
        return FetchOutcome.malformed(str(exc), payload)
    return FetchOutcome.found(items)


class DataForSeoProvider:
    def __init__(
        self,
        http_client: HttpClient,
        base_url: Optional[str] = None,
        serp_path: Optional[str] = None,
        location_code: Optional[int] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.base_url = (base_url or config.DATAFORSEO_BASE_URL).rstrip("/")
        self.serp_path = (serp_path or config.DATAFORSEO_SERP_PATH).strip("/")
        self.location_code = location_code
        self.metrics = metrics

    @classmethod
    def from_env(
        cls,
        location_code: Optional[int] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> "DataForSeoProvider":
        login = (os.environ.get(config.DATAFORSEO_LOGIN_ENV) or "").strip()
        password = (os.environ.get(config.DATAFORSEO_PASSWORD_ENV) or "").strip()
        if not login or not password:
            raise ValueError(
                f"{config.DATAFORSEO_LOGIN_ENV} and {config.DATAFORSEO_PASSWORD_ENV} env vars are required"
            )
        http_client = HttpClient(
            login,
            password,
            timeout=config.HTTP_TIMEOUT_SECONDS,
            retry_max=config.HTTP_RETRY_MAX,
            backoff_base=config.HTTP_BACKOFF_BASE,
            backoff_max=config.HTTP_BACKOFF_MAX,
            metrics=metrics,
        )
        return cls(http_client, location_code=location_code, metrics=metrics)

    def _url(self, suffix: str) -> str:
        return f"{self.base_url}/{self.serp_path}/{suffix}"

    def _count(self, kind: str) -> None:
        if self.metrics is not None:
            self.metrics.inc(kind)

    def submit_task(self, keyword: str, point: GridPoint, device: str, depth: int) -> str:
        body = build_task_body(keyword, point, device, depth, self.location_code)
        self._count("submit")
        try:
            # Retrying a POST is the caller's decision; never retry here.
            payload = self.http.post_json(self._url("task_post"), [body], max_attempts=1)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise SubmissionError(f"network error: {exc}", transient=True) from exc
        except (requests.RequestException, ValueError) as exc:
            raise SubmissionError(str(exc)) from exc
        return parse_task_post_response(payload)

    def ready_task_ids(self, max_attempts: Optional[int] = None) -> List[str]:
        self._count("ready")
        payload = self.http.get_json(self._url("tasks_ready"), max_attempts=max_attempts)
        return parse_tasks_ready_response(payload)

    def is_ready(self, task_id: str) -> bool:
        # The poll loop is the retry policy for readiness and fetches.
        try:
            ready = self.ready_task_ids(max_attempts=1)
        except (requests.RequestException, ValueError) as exc:
            logger.debug("tasks_ready check failed for %s: %s", task_id, exc)
            return False
        return task_id in ready

    def fetch_result(self, task_id: str) -> FetchOutcome:
        self._count("fetch")
        try:
            payload = self.http.get_json(self._url(f"task_get/advanced/{task_id}"), max_attempts=1)
        except ValueError as exc:
            # requests' JSONDecodeError is also a RequestException; match it first.
            return FetchOutcome.malformed(f"non-JSON body: {exc}")
        except requests.HTTPError as exc:
            response = exc.response
            if response is not None and response.status_code == 404:
                return FetchOutcome.not_found(str(exc))
            return FetchOutcome.not_ready(str(exc))
        except requests.RequestException as exc:
            return FetchOutcome.not_ready(str(exc))
        return parse_task_get_response(payload)
