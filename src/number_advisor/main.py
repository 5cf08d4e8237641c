from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse

from . import __version__
from .config import Settings, get_settings
from .countries import search_countries
from .logging import configure_logging, get_logger, request_logging_middleware
from .proxy import UNEXPECTED_ERROR_MESSAGE, ProxyOptions, ProxyResponse, handle_inquiry

APP_TITLE = "Phone Number Assistant"

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Startup: one shared connection pool for all upstream calls
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    app.state.upstream_client = httpx.AsyncClient()
    log.info(
        "application_starting",
        upstream_configured=bool(settings.qa_api_url and settings.bearer_token),
        fallback_configured=bool(settings.qa_api_url_fallback),
    )
    yield
    # Shutdown
    await app.state.upstream_client.aclose()
    log.info("application_stopped")


app = FastAPI(title=APP_TITLE, version=__version__, lifespan=lifespan)
app.middleware("http")(request_logging_middleware())


# --- Dependencies ---


def get_upstream_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.upstream_client


def qa_options(settings: Settings = Depends(get_settings)) -> ProxyOptions:
    """Plain route: answer only, no raw-token retry."""
    return ProxyOptions(timeout=settings.qa_timeout_seconds)


def simple_qa_options(settings: Settings = Depends(get_settings)) -> ProxyOptions:
    """Route used by the web UI: answer plus recommended numbers."""
    return ProxyOptions(
        timeout=settings.qa_timeout_seconds,
        retry_without_bearer=settings.qa_retry_without_bearer,
        include_recommended_numbers=True,
    )


def _to_json(result: ProxyResponse) -> JSONResponse:
    return JSONResponse(result.content, status_code=result.status_code)


# --- Routes ---


@app.get("/")
def demo_page(settings: Settings = Depends(get_settings)) -> FileResponse:
    """Chat UI: filter sidebar, chat log and recommended numbers table."""
    return FileResponse(settings.project_root / "static" / "index.html")


@app.get("/health")
def health() -> dict:
    return {"ok": True, "service": APP_TITLE, "version": __version__}


@app.post("/api/qa")
async def qa(
    request: Request,
    settings: Settings = Depends(get_settings),
    options: ProxyOptions = Depends(qa_options),
    client: httpx.AsyncClient = Depends(get_upstream_client),
) -> JSONResponse:
    """
    Accepts JSON:

      { "question": "...", "details": {...}, "history": [{"role": ..., "content": ...}] }

    Returns { "answer": "..." } or an error body.
    """
    raw_body = await request.body()
    return _to_json(await handle_inquiry(raw_body, settings, options, client))


@app.post("/api/qa/simple")
async def qa_simple(
    request: Request,
    settings: Settings = Depends(get_settings),
    options: ProxyOptions = Depends(simple_qa_options),
    client: httpx.AsyncClient = Depends(get_upstream_client),
) -> JSONResponse:
    """Same body as /api/qa; returns { "answer", "recommendedNumbers" }."""
    raw_body = await request.body()
    return _to_json(await handle_inquiry(raw_body, settings, options, client))


@app.get("/api/countries")
def countries(q: str | None = None) -> dict[str, list[dict[str, str]]]:
    """
    Country picker data.

    Example:
      GET /api/countries
      GET /api/countries?q=ger
    """
    return {"countries": [c.as_dict() for c in search_countries(q)]}


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_exception", path=request.url.path)
    return JSONResponse({"error": UNEXPECTED_ERROR_MESSAGE}, status_code=500)
