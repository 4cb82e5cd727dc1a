"""FastAPI service exposing the objective news pipeline and a completion proxy."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import NAME
from .completion import build_completion_client
from .config import configure_logging, get_settings
from .errors import CompletionError, CompletionTimeout, OrchestrationFailed
from .models import NewsItem, NewsResponse, PromptRequest
from .orchestrator import build_orchestrator, normalize_category

logger = logging.getLogger(__name__)

app = FastAPI(title=NAME)

FAILED_TO_LOAD = "Failed to fetch news"
TIMED_OUT = "Timed out while fetching news"


def _add_cors(app: FastAPI) -> None:
    """Allow browser front ends to call the API during local development."""
    allow_all = os.getenv("CORS_ALLOW_ALL", "true").lower() == "true"
    origins_env = os.getenv("CORS_ALLOW_ORIGINS", "")
    origins = [o.strip() for o in origins_env.split(",") if o.strip()]
    allow_credentials = (
        os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"
    )
    if allow_all or not origins:
        origins = ["*"]
    if origins == ["*"] and allow_credentials:
        # Starlette/FastAPI disallow wildcard origins when credentials are enabled.
        allow_credentials = False
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )


_add_cors(app)


async def _run_news_pipeline(category: str) -> List[NewsItem]:
    return await build_orchestrator().fetch_news(category)


async def _run_completion(request: PromptRequest) -> Dict[str, Any]:
    return await build_completion_client().complete_envelope(request)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/categories")
def categories() -> Dict[str, List[str]]:
    settings = get_settings()
    return {"categories": list(settings.categories), "sources": list(settings.sources)}


@app.get("/api/news/{category}")
async def news(category: str) -> JSONResponse:
    """
    Trending news for a category, each story cross-referenced across outlets.

    504 when the trending stage timed out, 500 for any other run failure.
    Stories whose objectivity pass failed still appear with a fallback summary.
    """
    settings = get_settings()
    normalized = normalize_category(
        category, default=settings.default_category, decode=False
    )
    try:
        news_list = await _run_news_pipeline(normalized)
    except OrchestrationFailed as exc:
        logger.error("News run failed for %r: %s", normalized, exc)
        if exc.timed_out:
            return _error(status.HTTP_504_GATEWAY_TIMEOUT, TIMED_OUT)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, FAILED_TO_LOAD)
    except Exception:
        logger.exception("Unexpected error fetching news for %r", normalized)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, FAILED_TO_LOAD)

    body = NewsResponse(category=normalized, news_list=news_list)
    return JSONResponse(
        status_code=status.HTTP_200_OK, content=body.model_dump(by_alias=True)
    )


@app.post("/api/completions")
async def completions(payload: Dict[str, Any]) -> JSONResponse:
    """Proxy a chat completion; returns the upstream envelope unchanged."""
    messages = payload.get("messages")
    if not isinstance(messages, list):
        return _error(
            status.HTTP_400_BAD_REQUEST, "Invalid request: messages must be an array"
        )
    try:
        request = PromptRequest(
            messages=tuple(messages),
            temperature=payload.get("temperature") or 0.7,
        )
    except ValidationError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, f"Invalid request: {exc}")

    try:
        envelope = await _run_completion(request)
    except CompletionTimeout as exc:
        logger.error("Completion proxy timed out: %s", exc)
        return _error(status.HTTP_504_GATEWAY_TIMEOUT, "Completion timed out")
    except CompletionError as exc:
        logger.error("Completion proxy failed: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
    except Exception:
        logger.exception("Unexpected completion proxy error")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
    return JSONResponse(status_code=status.HTTP_200_OK, content=envelope)


def run_server(host: str | None = None, port: int | None = None, reload: bool | None = None) -> None:
    import uvicorn

    configure_logging(get_settings().log_level)
    uvicorn.run(
        "objective_brief.server:app",
        host=host or os.getenv("BRIEF_HOST", "0.0.0.0"),
        port=port or int(os.getenv("BRIEF_PORT", "8000")),
        reload=reload if reload is not None else os.getenv("BRIEF_RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    run_server()
