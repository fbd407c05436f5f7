from __future__ import annotations

import pytest
import requests

from civic_alerts.common.errors import ExternalServiceError
from civic_alerts.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_http_get_json_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, [{"lat": "42.7"}]))
    payload = client.get_json("https://example.com", source_type="test")

    assert payload == [{"lat": "42.7"}]


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableHttpError):
        client.get_json("https://example.com", source_type="test")


def test_http_retries_retryable_status_until_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.01, max_wait=0.01))
    responses = iter([FakeResponse(429), FakeResponse(200, {"ok": True})])
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: next(responses))

    assert client.get_json("https://example.com", source_type="test") == {"ok": True}


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(HttpRequestError):
        client.get_json("https://example.com", source_type="test")


def test_http_timeout_is_not_retried(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.01, max_wait=0.01))
    calls = []

    def time_out(**kwargs):
        calls.append(kwargs)
        raise requests.Timeout("slow")

    monkeypatch.setattr(client.session, "request", time_out)

    with pytest.raises(ExternalServiceError) as excinfo:
        client.post_form_json("https://example.com", source_type="overpass", data={"data": "q"})

    assert len(calls) == 1
    assert excinfo.value.service == "overpass"
    assert calls[0]["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
