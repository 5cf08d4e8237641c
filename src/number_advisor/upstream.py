"""
Single-attempt client for the upstream question-answering service.

`call_upstream` never raises for network problems: connection errors and
timeouts come back as an UpstreamOutcome with no status, which the proxy
treats like a gateway error.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Final, Literal

import httpx

from .logging import get_logger

log = get_logger(__name__)

GATEWAY_STATUSES: Final[frozenset[int]] = frozenset({502, 503, 504})

BodyKind = Literal["json", "text", "empty"]


@dataclass(frozen=True)
class UpstreamBody:
    kind: BodyKind
    raw: str = ""
    data: Any = None

    @classmethod
    def from_text(cls, text: str) -> UpstreamBody:
        if not text.strip():
            return cls(kind="empty", raw=text)
        try:
            return cls(kind="json", raw=text, data=json.loads(text, parse_constant=_reject_constant))
        except ValueError:
            return cls(kind="text", raw=text)

    @property
    def parsed(self) -> Any:
        """Parsed JSON value, or None when the body was not JSON."""
        return self.data if self.kind == "json" else None

    def field(self, name: str, default: Any) -> Any:
        parsed = self.parsed
        if isinstance(parsed, dict) and parsed.get(name) is not None:
            return parsed[name]
        return default


@dataclass(frozen=True)
class UpstreamOutcome:
    url: str
    status: int | None
    body: UpstreamBody

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    @property
    def is_gateway_failure(self) -> bool:
        return self.status is None or self.status in GATEWAY_STATUSES


def authorization_header(credential: str, *, raw: bool = False) -> str:
    return credential if raw else f"Bearer {credential}"


async def call_upstream(
    client: httpx.AsyncClient,
    url: str,
    question: str,
    credential: str,
    *,
    timeout: float,
    raw_credential: bool = False,
) -> UpstreamOutcome:
    """
    POST {"question": question} to url and read the whole body as text.

    raw_credential=True sends the token without the "Bearer " scheme.
    """
    headers = {
        "Authorization": authorization_header(credential, raw=raw_credential),
        "Content-Type": "application/json",
    }
    start = time.perf_counter()
    try:
        # One deadline for the whole exchange; httpx alone only bounds each phase.
        async with asyncio.timeout(timeout):
            response = await client.post(
                url,
                headers=headers,
                json={"question": question},
                timeout=httpx.Timeout(timeout),
            )
    except TimeoutError:
        log.warning(
            "upstream_request_timed_out",
            url=url,
            timeout_s=timeout,
            raw_credential=raw_credential,
            elapsed_ms=_elapsed_ms(start),
        )
        body = UpstreamBody(kind="text", raw=f"TimeoutError: no complete response within {timeout}s")
        return UpstreamOutcome(url=url, status=None, body=body)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log.warning(
            "upstream_request_failed",
            url=url,
            error_type=type(e).__name__,
            raw_credential=raw_credential,
            elapsed_ms=_elapsed_ms(start),
        )
        return UpstreamOutcome(url=url, status=None, body=UpstreamBody(kind="text", raw=_describe(e)))

    body = UpstreamBody.from_text(response.text)
    log.info(
        "upstream_response",
        url=url,
        status=response.status_code,
        body_kind=body.kind,
        body_chars=len(body.raw),
        raw_credential=raw_credential,
        elapsed_ms=_elapsed_ms(start),
    )
    return UpstreamOutcome(url=url, status=response.status_code, body=body)


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be echoed back to the client.
    raise ValueError(f"non-standard JSON constant: {name}")


def _describe(error: Exception) -> str:
    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 2)
