"""FastAPI application that runs the release notes pipeline from webhooks.

Point a GitHub webhook (push + pull_request events) at this service to get
the same behaviour as the action without a workflow:
- POST /webhook - Run the pipeline for a webhook delivery
- POST /preview - Show which section a PR would land in (no publishing)
- GET /health - Health check for load balancers and monitoring

Configuration comes from the same INPUT_* variables as the action, plus
GITHUB_WEBHOOK_SECRET for signature verification.

To run locally:
    uvicorn release_notes.main:app --reload --port 8000
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from release_notes.classifier import assign_section, should_exclude
from release_notes.config import load_config
from release_notes.context.github import GitHubClient
from release_notes.errors import ConfigurationError, ResolutionError
from release_notes.logging_config import get_logger, setup_logging
from release_notes.pipeline import ReleaseNotesPipeline
from release_notes.renderer import format_line
from release_notes.schemas import ChangeRequestRecord, PipelineResult, TriggerContext

logger = get_logger(__name__)

HANDLED_EVENTS = frozenset({"push", "pull_request", "workflow_dispatch"})


# ---------------------------------------------------------------------------
# Application Lifespan (startup/shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the pipeline once at startup."""
    setup_logging()
    config = load_config()
    app.state.pipeline = ReleaseNotesPipeline(GitHubClient(token=config.github_token), config)
    app.state.webhook_secret = os.environ.get("GITHUB_WEBHOOK_SECRET") or None
    app.state.server_url = os.environ.get("GITHUB_SERVER_URL", "https://github.com")
    yield


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Release Notes",
    description="Composes release notes from merged pull requests",
    version="0.1.0",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------


class PreviewRequest(BaseModel):
    number: int = Field(..., gt=0, description="Pull request number")
    title: str = Field("", description="Pull request title")
    author: str = Field("unknown", description="Author login")
    labels: list[str] = Field(default_factory=list, description="Label names")


class PreviewResponse(BaseModel):
    section: str
    excluded: bool
    entry: str


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw body."""
    if not signature:
        return False
    expected = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "configuration_error", "detail": str(exc)},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "validation_error", "detail": str(exc)},
    )


@app.exception_handler(ResolutionError)
async def resolution_error_handler(request: Request, exc: ResolutionError) -> JSONResponse:
    """A tag exists but its commit date can't be read; retrying won't help."""
    return JSONResponse(
        status_code=409,
        content={"error": "resolution_error", "detail": str(exc)},
    )


@app.exception_handler(httpx.HTTPStatusError)
async def github_error_handler(request: Request, exc: httpx.HTTPStatusError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={
            "error": "github_error",
            "detail": f"GitHub returned {exc.response.status_code} for {exc.request.url}",
        },
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.post("/webhook", response_model=None)
async def webhook(
    request: Request,
    x_github_event: str = Header(...),
    x_hub_signature_256: str | None = Header(None),
) -> PipelineResult | JSONResponse:
    """Run the pipeline for a push, pull_request or workflow_dispatch delivery.

    Other events are acknowledged with 202 and ignored.

    Raises:
        HTTPException: 401 on a bad signature, 422 on an unusable payload
    """
    body = await request.body()
    secret = getattr(request.app.state, "webhook_secret", None)
    if secret and not verify_signature(secret, body, x_hub_signature_256):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    if x_github_event not in HANDLED_EVENTS:
        return JSONResponse(
            status_code=202, content={"status": "ignored", "event": x_github_event}
        )

    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"Payload is not JSON: {e}")

    trigger = TriggerContext.from_webhook(
        x_github_event,
        payload,
        server_url=getattr(request.app.state, "server_url", "https://github.com"),
    )
    if not trigger.repository:
        raise HTTPException(status_code=422, detail="Payload has no repository.full_name")

    pipeline: ReleaseNotesPipeline = request.app.state.pipeline
    return await pipeline.run(trigger)


@app.post("/preview", response_model=PreviewResponse)
async def preview(body: PreviewRequest, request: Request) -> PreviewResponse:
    """Classify a single PR with the configured rules, without publishing."""
    pipeline: ReleaseNotesPipeline = request.app.state.pipeline
    config = pipeline.config.classifier_config()
    record = ChangeRequestRecord(
        number=body.number, title=body.title, author=body.author, labels=tuple(body.labels)
    )
    return PreviewResponse(
        section=assign_section(record, config),
        excluded=should_exclude(record, config),
        entry=format_line(record),
    )
