from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from number_advisor.config import Settings, get_settings
from number_advisor.main import app, get_upstream_client

PRIMARY_URL = "https://qa.example.com/ask"
FALLBACK_URL = "https://qa-backup.example.com/ask"
TOKEN = "secret-token"


class FakeUpstream:
    """
    Scripted upstream used as an httpx.MockTransport handler.

    Each request consumes the next scripted item: an httpx.Response is
    returned, an exception is raised. Every request is recorded.
    """

    def __init__(self, *script: httpx.Response | Exception) -> None:
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.script:
            raise AssertionError(f"unexpected upstream call to {request.url}")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def sent_questions(self) -> list[str]:
        return [json.loads(r.content)["question"] for r in self.requests]


def json_response(status: int, payload: Any) -> httpx.Response:
    return httpx.Response(status, json=payload)


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.delenv("QA_API_TIMEOUT", raising=False)
    monkeypatch.delenv("QA_API_RETRY_WITHOUT_BEARER", raising=False)
    return Settings(
        qa_api_url=PRIMARY_URL,
        qa_api_url_fallback=FALLBACK_URL,
        qa_api_bearer=TOKEN,
    )


@pytest.fixture
def make_client(settings: Settings) -> Iterator[Callable[..., TestClient]]:
    """Build a TestClient whose settings and upstream transport are substituted."""

    def _make(upstream: FakeUpstream, config: Settings | None = None) -> TestClient:
        upstream_client = upstream.client()
        app.dependency_overrides[get_settings] = lambda: config or settings
        app.dependency_overrides[get_upstream_client] = lambda: upstream_client
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
