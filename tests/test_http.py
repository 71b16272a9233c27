import pytest
import requests

from geogrid import http as http_mod
from geogrid.http import HttpClient, RequestMetrics


class FakeResponse:
    def __init__(self, payload=None, status_code=200, headers=None):
        self._payload = payload if payload is not None else {}
        self.status_code = status_code
        self.headers = headers or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class SequenceSession:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.auth = None

    def _next(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def post(self, url, json=None, headers=None, timeout=None):
        return self._next()

    def get(self, url, headers=None, timeout=None):
        return self._next()


def make_client(outcomes, retry_max=3, metrics=None):
    client = HttpClient("user", "pw", timeout=1, retry_max=retry_max, backoff_base=0.0, backoff_max=0.0, metrics=metrics)
    client.session = SequenceSession(outcomes)
    return client


def test_basic_auth_is_configured_on_session():
    client = HttpClient("user", "pw")
    assert client.session.auth == ("user", "pw")


def test_retries_transient_status_then_succeeds():
    metrics = RequestMetrics()
    client = make_client([FakeResponse(status_code=503), FakeResponse({"ok": True})], metrics=metrics)
    assert client.get_json("https://example.test/x") == {"ok": True}
    assert client.session.calls == 2
    assert metrics.retries == 1


def test_retries_network_errors_up_to_limit():
    client = make_client([requests.ConnectionError("a"), requests.ConnectionError("b")], retry_max=2)
    with pytest.raises(requests.ConnectionError):
        client.post_json("https://example.test/x", [{}])
    assert client.session.calls == 2


def test_max_attempts_override_disables_retry():
    client = make_client([FakeResponse(status_code=500), FakeResponse({"ok": True})])
    with pytest.raises(requests.HTTPError):
        client.post_json("https://example.test/x", [{}], max_attempts=1)
    assert client.session.calls == 1


def test_non_retryable_status_raises_immediately():
    client = make_client([FakeResponse(status_code=401), FakeResponse({"ok": True})])
    with pytest.raises(requests.HTTPError):
        client.get_json("https://example.test/x")
    assert client.session.calls == 1


def test_retry_after_header_is_honoured(monkeypatch):
    slept = []
    monkeypatch.setattr(http_mod.time, "sleep", lambda s: slept.append(s))
    client = make_client([FakeResponse(status_code=429, headers={"Retry-After": "3"}), FakeResponse({"ok": 1})])
    client.backoff_max = 10.0
    assert client.get_json("https://example.test/x") == {"ok": 1}
    assert slept == [3.0]


def test_request_metrics_rejects_unknown_kind():
    metrics = RequestMetrics()
    metrics.inc("submit")
    metrics.inc("cache_hit")
    assert metrics.as_dict()["submissions"] == 1
    assert metrics.as_dict()["cache_hits"] == 1
    with pytest.raises(ValueError):
        metrics.inc("places")
