"""HTTP client for the remote image analysis service."""

import time
from typing import Any, Literal

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict


QUOTA_EXCEEDED_REASON = "quota exceeded"


class AnalysisSuccess(BaseModel):
    """The service answered with a JSON document."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    payload: dict[str, Any]


class QuotaExceeded(BaseModel):
    """The service refused the call because the subscription quota is used up."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["quota_exceeded"] = "quota_exceeded"
    status: int
    reason: str
    body: str = ""


class RequestFailed(BaseModel):
    """Any other unsuccessful reply."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["request_failed"] = "request_failed"
    status: int
    reason: str
    body: str = ""


class TransportError(BaseModel):
    """The request never produced a reply (DNS, connect, timeout, ...)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["transport_error"] = "transport_error"
    error: str


AnalysisOutcome = AnalysisSuccess | QuotaExceeded | RequestFailed | TransportError


def build_request_url(endpoint: str, parameters: str, api_key: str) -> str:
    """
    Join the endpoint, fixed query parameters and subscription key into a request URL.

    Examples:
        >>> build_request_url("https://vision.example/analyze", "?visualFeatures=Tags", "k1")
        'https://vision.example/analyze?visualFeatures=Tags&subscription-key=k1'

    """
    return f"{endpoint}{parameters}&subscription-key={api_key}"


def is_quota_exceeded(reason: str) -> bool:
    return QUOTA_EXCEEDED_REASON in reason.casefold()


def classify_response(response: httpx.Response) -> AnalysisOutcome:
    """Map an HTTP response onto the closed set of analysis outcomes."""
    reason = response.reason_phrase or ""
    if response.is_success:
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("analysis_invalid_json", error=str(exc), status=response.status_code)
            return RequestFailed(status=response.status_code, reason=reason, body=response.text)
        if not isinstance(payload, dict):
            logger.error("analysis_unexpected_payload", type=type(payload).__name__)
            return RequestFailed(status=response.status_code, reason=reason, body=response.text)
        return AnalysisSuccess(payload=payload)

    if is_quota_exceeded(reason):
        logger.error("analysis_quota_exceeded", status=response.status_code, reason=reason)
        return QuotaExceeded(status=response.status_code, reason=reason, body=response.text)

    logger.error(
        "analysis_request_failed",
        status=response.status_code,
        reason=reason,
        body=response.text,
    )
    return RequestFailed(status=response.status_code, reason=reason, body=response.text)


def analyze_image(
    data: bytes,
    *,
    endpoint: str,
    api_key: str,
    parameters: str,
    timeout: float = 30.0,
) -> AnalysisOutcome:
    """
    Submit image bytes to the analysis service and classify the reply.

    One blocking POST per call; nothing is retried here.

    Args:
        data: Image bytes sent as the request body
        endpoint: Service URL without query string
        api_key: Subscription key appended to the query string
        parameters: Fixed query string starting with '?'
        timeout: Seconds to wait for the reply

    Returns:
        One of AnalysisSuccess, QuotaExceeded, RequestFailed or TransportError

    """
    url = build_request_url(endpoint, parameters, api_key)
    logger.info("analysis_request_sending", size_kb=len(data) // 1024)
    _t0 = time.perf_counter()
    try:
        response = httpx.post(
            url,
            content=data,
            headers={"Content-Type": "image/*", "Accept": "application/json"},
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        logger.error("analysis_transport_error", error=str(exc), endpoint=endpoint)
        return TransportError(error=str(exc))

    logger.info(
        "analysis_response_received",
        status=response.status_code,
        seconds=round(time.perf_counter() - _t0, 3),
    )
    return classify_response(response)
