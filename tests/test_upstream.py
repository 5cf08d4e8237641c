from __future__ import annotations

import asyncio
import json
import time

import httpx
import pytest
from conftest import PRIMARY_URL, TOKEN, FakeUpstream, json_response

from number_advisor.upstream import UpstreamBody, UpstreamOutcome, call_upstream


def _call(upstream: FakeUpstream, *, raw_credential: bool = False) -> UpstreamOutcome:
    async def run() -> UpstreamOutcome:
        async with upstream.client() as client:
            return await call_upstream(
                client, PRIMARY_URL, "the prompt", TOKEN, timeout=5.0, raw_credential=raw_credential
            )

    return asyncio.run(run())


def test_posts_question_with_bearer_header() -> None:
    upstream = FakeUpstream(json_response(200, {"answer": "hi"}))
    outcome = _call(upstream)

    assert outcome.ok
    assert outcome.status == 200
    assert outcome.body.kind == "json"
    assert outcome.body.parsed == {"answer": "hi"}

    (request,) = upstream.requests
    assert request.method == "POST"
    assert str(request.url) == PRIMARY_URL
    assert request.headers["Authorization"] == f"Bearer {TOKEN}"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {"question": "the prompt"}


def test_raw_credential_drops_bearer_scheme() -> None:
    upstream = FakeUpstream(json_response(200, {}))
    _call(upstream, raw_credential=True)
    assert upstream.requests[0].headers["Authorization"] == TOKEN


def test_non_json_body_keeps_raw_text() -> None:
    upstream = FakeUpstream(httpx.Response(502, text="<html>Bad Gateway</html>"))
    outcome = _call(upstream)

    assert not outcome.ok
    assert outcome.status == 502
    assert outcome.is_gateway_failure
    assert outcome.body.kind == "text"
    assert outcome.body.parsed is None
    assert outcome.body.raw == "<html>Bad Gateway</html>"


def test_empty_body() -> None:
    outcome = _call(FakeUpstream(httpx.Response(204)))
    assert outcome.ok
    assert outcome.body.kind == "empty"
    assert outcome.body.field("answer", "") == ""


def test_connection_error_becomes_outcome_without_status() -> None:
    outcome = _call(FakeUpstream(httpx.ConnectError("connection refused")))

    assert outcome.status is None
    assert not outcome.ok
    assert outcome.is_gateway_failure
    assert outcome.body.kind == "text"
    assert outcome.body.raw == "ConnectError: connection refused"


def test_timeout_matches_connection_error() -> None:
    timed_out = _call(FakeUpstream(httpx.ReadTimeout("timed out")))
    refused = _call(FakeUpstream(httpx.ConnectError("refused")))

    assert timed_out.status is None and refused.status is None
    assert timed_out.is_gateway_failure and refused.is_gateway_failure
    assert timed_out.body.raw.startswith("ReadTimeout")


@pytest.mark.parametrize("status", [400, 401, 403, 404, 500])
def test_non_gateway_statuses(status: int) -> None:
    outcome = _call(FakeUpstream(json_response(status, {"detail": "nope"})))
    assert not outcome.ok
    assert not outcome.is_gateway_failure


@pytest.mark.parametrize(
    ("text", "kind", "parsed"),
    [
        ('{"answer": "x"}', "json", {"answer": "x"}),
        ("[1, 2]", "json", [1, 2]),
        ("not json", "text", None),
        ("   ", "empty", None),
        ('{"answer": NaN}', "text", None),
        ("Infinity", "text", None),
        ("[-Infinity]", "text", None),
    ],
)
def test_body_classification(text: str, kind: str, parsed: object) -> None:
    body = UpstreamBody.from_text(text)
    assert body.kind == kind
    assert body.parsed == parsed
    assert body.raw == text


def test_field_defaults_for_null_and_non_object() -> None:
    assert UpstreamBody.from_text('{"answer": null}').field("answer", "") == ""
    assert UpstreamBody.from_text("[1]").field("answer", "") == ""
    assert UpstreamBody.from_text('{"answer": "a"}').field("answer", "") == "a"


TRICKLED_BODY = b'{"answer": "much too late"}'


async def _trickle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Answer 200 at once, then send the body one byte every 0.2 s."""
    await reader.readuntil(b"\r\n\r\n")
    writer.write(
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: application/json\r\n"
        b"Transfer-Encoding: chunked\r\n\r\n"
    )
    try:
        for byte in TRICKLED_BODY:
            writer.write(b"1\r\n" + bytes([byte]) + b"\r\n")
            await writer.drain()
            await asyncio.sleep(0.2)
        writer.write(b"0\r\n\r\n")
        await writer.drain()
    except ConnectionError:
        pass
    finally:
        writer.close()


def test_slow_upstream_is_cut_off_at_the_deadline() -> None:
    # Each gap is shorter than the timeout, so only a whole-call deadline stops it.
    async def run() -> tuple[UpstreamOutcome, float]:
        server = await asyncio.start_server(_trickle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            async with httpx.AsyncClient(trust_env=False) as client:
                start = time.perf_counter()
                outcome = await call_upstream(
                    client, f"http://127.0.0.1:{port}/ask", "q", TOKEN, timeout=0.5
                )
                return outcome, time.perf_counter() - start
        finally:
            server.close()

    outcome, elapsed = asyncio.run(run())

    assert elapsed < 2.0
    assert outcome.status is None
    assert outcome.is_gateway_failure
    assert outcome.body.kind == "text"
    assert outcome.body.raw.startswith("TimeoutError")
