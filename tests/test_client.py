"""Tests for the analysis service client."""

from http import HTTPStatus
from typing import Any

import httpx
import pytest

import image_annotator.client as c


ENDPOINT = "https://vision.example/vision/v3.2/analyze"
PARAMS = "?visualFeatures=Tags"


def _patch_httpx_post(
    monkeypatch: pytest.MonkeyPatch,
    response: httpx.Response | Exception,
) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_post(
        url: str,
        *,
        content: bytes,
        headers: dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        calls.append({"url": url, "content": content, "headers": headers, "timeout": timeout})
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(c.httpx, "post", fake_post)
    return calls


def _analyze() -> c.AnalysisOutcome:
    return c.analyze_image(b"\xff\xd8jpeg", endpoint=ENDPOINT, api_key="secret", parameters=PARAMS)


def test_build_request_url_appends_key_after_parameters() -> None:
    """The key is appended to the fixed query string."""
    url = c.build_request_url(ENDPOINT, PARAMS, "secret")
    assert url == f"{ENDPOINT}?visualFeatures=Tags&subscription-key=secret"


def test_analyze_image_posts_raw_bytes_and_returns_payload(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A 200 reply with a JSON object becomes AnalysisSuccess."""
    payload = {"description": {"captions": [{"text": "a cat"}]}}
    calls = _patch_httpx_post(monkeypatch, httpx.Response(HTTPStatus.OK, json=payload))

    outcome = _analyze()

    assert isinstance(outcome, c.AnalysisSuccess)
    assert outcome.payload == payload
    assert len(calls) == 1
    recorded = calls[0]
    assert recorded["url"].endswith("&subscription-key=secret")
    assert recorded["content"] == b"\xff\xd8jpeg"
    assert recorded["headers"]["Content-Type"] == "image/*"


def test_analyze_image_classifies_quota_exceeded(monkeypatch: pytest.MonkeyPatch) -> None:
    """The 'Quota Exceeded' reason phrase is recognised as fatal for the run."""
    response = httpx.Response(
        HTTPStatus.FORBIDDEN,
        text="Out of call volume quota.",
        extensions={"reason_phrase": b"Quota Exceeded"},
    )
    _patch_httpx_post(monkeypatch, response)

    outcome = _analyze()

    assert isinstance(outcome, c.QuotaExceeded)
    assert outcome.status == HTTPStatus.FORBIDDEN
    assert outcome.body == "Out of call volume quota."


def test_analyze_image_other_failures_are_request_failed(monkeypatch: pytest.MonkeyPatch) -> None:
    """Non-quota error replies keep their status, reason and body."""
    response = httpx.Response(HTTPStatus.BAD_REQUEST, json={"code": "InvalidImageSize"})
    _patch_httpx_post(monkeypatch, response)

    outcome = _analyze()

    assert isinstance(outcome, c.RequestFailed)
    assert outcome.status == HTTPStatus.BAD_REQUEST
    assert outcome.reason == "Bad Request"
    assert "InvalidImageSize" in outcome.body


def test_analyze_image_invalid_json_is_request_failed(monkeypatch: pytest.MonkeyPatch) -> None:
    """A successful status with an unreadable body is not treated as success."""
    _patch_httpx_post(monkeypatch, httpx.Response(HTTPStatus.OK, text="<html>"))

    assert isinstance(_analyze(), c.RequestFailed)


def test_analyze_image_json_array_is_request_failed(monkeypatch: pytest.MonkeyPatch) -> None:
    """Only JSON objects are accepted as analysis documents."""
    _patch_httpx_post(monkeypatch, httpx.Response(HTTPStatus.OK, json=[1, 2]))

    assert isinstance(_analyze(), c.RequestFailed)


def test_analyze_image_connection_error_is_transport_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Exceptions raised by httpx become TransportError."""
    _patch_httpx_post(monkeypatch, httpx.ConnectError("connection refused"))

    outcome = _analyze()

    assert isinstance(outcome, c.TransportError)
    assert "connection refused" in outcome.error


def test_is_quota_exceeded_ignores_case() -> None:
    """Reason phrase matching is case insensitive."""
    assert c.is_quota_exceeded("QUOTA EXCEEDED")
    assert not c.is_quota_exceeded("Too Many Requests")
