"""
Proxy between the chat UI and the upstream question-answering service.

Both HTTP routes (and the terminal chat) go through `handle_inquiry`; they
differ only in the ProxyOptions they pass.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, cast

import httpx

from .config import Settings
from .logging import get_logger
from .models import ErrorMessage, Inquiry, RecommendationResult, UpstreamErrorBody
from .prompt import compose_prompt
from .upstream import UpstreamBody, UpstreamOutcome, call_upstream

log = get_logger(__name__)

INVALID_REQUEST_MESSAGE = "Invalid request: 'question' is required"
NOT_CONFIGURED_MESSAGE = (
    "Server not configured. Set QA_API_URL and QA_API_BEARER environment variables."
)
UNEXPECTED_ERROR_MESSAGE = "Unexpected server error"


class InquiryValidationError(ValueError):
    """The request body has no usable question."""


class ConfigurationError(RuntimeError):
    """The upstream URL or credential is missing."""


@dataclass(frozen=True)
class ProxyOptions:
    timeout: float = 10.0
    retry_without_bearer: bool = False
    include_recommended_numbers: bool = False


@dataclass(frozen=True)
class ProxyResponse:
    status_code: int
    content: dict[str, Any]


@dataclass(frozen=True)
class UpstreamTarget:
    primary_url: str
    fallback_url: str | None
    credential: str

    @property
    def has_distinct_fallback(self) -> bool:
        return bool(self.fallback_url) and self.fallback_url != self.primary_url


def parse_inquiry(raw_body: bytes) -> Inquiry:
    """Decode the body leniently: unreadable JSON counts as an empty object."""
    try:
        payload = json.loads(raw_body) if raw_body else {}
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    question = payload.get("question")
    if not isinstance(question, str) or not question:
        raise InquiryValidationError(INVALID_REQUEST_MESSAGE)
    return Inquiry.from_payload(payload)


def resolve_target(settings: Settings) -> UpstreamTarget:
    credential = settings.bearer_token
    if not settings.qa_api_url or not credential:
        raise ConfigurationError(NOT_CONFIGURED_MESSAGE)
    return UpstreamTarget(
        primary_url=settings.qa_api_url,
        fallback_url=settings.qa_api_url_fallback,
        credential=credential,
    )


def _success(outcome: UpstreamOutcome, options: ProxyOptions) -> ProxyResponse:
    result = RecommendationResult(
        answer=outcome.body.field("answer", ""),
        recommendedNumbers=outcome.body.field("recommendedNumbers", []),
    )
    return ProxyResponse(200, result.to_content(options.include_recommended_numbers))


def _error_body(*bodies: UpstreamBody) -> Any:
    """Pick the most informative body: first parsed JSON, then first non-empty text."""
    for body in bodies:
        if body.parsed is not None:
            return body.parsed
    for body in bodies:
        if body.raw:
            return body.raw
    return bodies[0].raw if bodies else None


def _upstream_error(status: int, tried: list[str], *bodies: UpstreamBody) -> ProxyResponse:
    error = UpstreamErrorBody(tried=tried, status=status, body=_error_body(*bodies))
    return ProxyResponse(status, error.model_dump())


async def proxy_inquiry(
    inquiry: Inquiry,
    target: UpstreamTarget,
    options: ProxyOptions,
    client: httpx.AsyncClient,
) -> ProxyResponse:
    """
    Primary call, optional raw-token retry on 401, then at most one fallback
    call for gateway-class failures.
    """
    question = compose_prompt(inquiry)

    async def attempt(url: str, raw_credential: bool = False) -> UpstreamOutcome:
        return await call_upstream(
            client,
            url,
            question,
            target.credential,
            timeout=options.timeout,
            raw_credential=raw_credential,
        )

    primary = await attempt(target.primary_url)

    if primary.status == 401 and options.retry_without_bearer:
        log.info("upstream_unauthorized_retrying_raw_token", url=target.primary_url)
        primary = await attempt(target.primary_url, raw_credential=True)

    if primary.ok:
        return _success(primary, options)

    if not (primary.is_gateway_failure and target.has_distinct_fallback):
        log.warning("upstream_failed", url=target.primary_url, status=primary.status)
        return _upstream_error(primary.status or 502, [target.primary_url], primary.body)

    fallback_url = cast(str, target.fallback_url)
    log.info("upstream_trying_fallback", primary_status=primary.status, url=fallback_url)
    fallback = await attempt(fallback_url)
    if fallback.ok:
        return _success(fallback, options)

    status = fallback.status or primary.status or 502
    log.warning(
        "upstream_fallback_failed",
        primary_status=primary.status,
        fallback_status=fallback.status,
    )
    return _upstream_error(
        status, [target.primary_url, fallback_url], fallback.body, primary.body
    )


async def handle_inquiry(
    raw_body: bytes,
    settings: Settings,
    options: ProxyOptions,
    client: httpx.AsyncClient,
) -> ProxyResponse:
    """
    Full request cycle for one inquiry. Always returns a response; nothing
    raised in here reaches the transport layer.
    """
    try:
        inquiry = parse_inquiry(raw_body)
        target = resolve_target(settings)
        return await proxy_inquiry(inquiry, target, options, client)
    except InquiryValidationError as e:
        return ProxyResponse(400, ErrorMessage(error=str(e)).model_dump())
    except ConfigurationError as e:
        log.error("proxy_not_configured")
        return ProxyResponse(500, ErrorMessage(error=str(e)).model_dump())
    except Exception:
        log.exception("proxy_unexpected_error")
        return ProxyResponse(500, ErrorMessage(error=UNEXPECTED_ERROR_MESSAGE).model_dump())
