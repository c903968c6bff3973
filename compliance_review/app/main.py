"""
FastAPI entrypoint for the compliance review service.

The HTTP surface is thin: it validates request shapes, delegates to the
`ComplianceCoordinator` and maps the two fatal error classes (bad input,
unloadable rules) to HTTP errors. Reviewer failures never surface as
HTTP errors on review endpoints; they degrade the returned report.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional, Set
from uuid import uuid4

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import Response

from compliance_review.app.config import ReviewSettings, get_settings
from compliance_review.app.coordinator.coordinator import (
    ComplianceCoordinator,
    ReviewOutcome,
)
from compliance_review.app.errors import (
    InputError,
    ReviewerUnavailableError,
    RuleLoadError,
)
from compliance_review.app.events import MemoryQueueEventEmitter
from compliance_review.app.extraction.extractor import PlainTextExtractor
from compliance_review.app.schemas.audit import AuditResult
from compliance_review.app.schemas.document import Page
from compliance_review.app.schemas.report import (
    Explanation,
    Fix,
    FusedReport,
    ReviewModeName,
    Scene,
)
from compliance_review.app.schemas.rules import RuleSet

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Presentation helpers (presentation-only)
# ---------------------------------------------------------------------------


class PrettyJSONResponse(Response):
    """Pretty-printed, non-ASCII-preserving JSON for human consumption."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=2,
            separators=(", ", ": "),
        ).encode("utf-8")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class PagesBody(BaseModel):
    pages: List[Page] = Field(..., description="Extracted pages")

    model_config = ConfigDict(extra="forbid")


class ReviewBody(BaseModel):
    mode: Optional[ReviewModeName] = Field(
        None,
        description="Review mode (defaults to the configured mode)",
    )
    pages: List[Page]
    audit: Optional[AuditResult] = Field(
        None,
        description="Existing rule audit; computed when omitted",
    )
    scene: Scene = Scene.INTERNAL_TRAINING
    ocr_text: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ExplainBody(BaseModel):
    item: Fix

    model_config = ConfigDict(extra="forbid")


class ExtractResponse(BaseModel):
    pages_count: int
    pages: List[Page]


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Compliance Review Service",
    description="Rule audit and reviewer fusion for presentation materials",
    version="0.1.0",
)

_background_tasks: Set[asyncio.Task] = set()


@app.on_event("startup")
def startup_event() -> None:
    """
    Load settings once and wire the coordinator.

    A coordinator already placed on `app.state` (tests, embedding
    applications) is kept as-is.
    """
    settings: ReviewSettings = getattr(app.state, "settings", None) or get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app.state.settings = settings
    if getattr(app.state, "coordinator", None) is None:
        app.state.coordinator = ComplianceCoordinator.from_settings(settings)

    logger.info(
        "Compliance review service started (default mode=%s, rules=%s)",
        settings.mode.value,
        settings.rules_path,
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Close the reviewer client's connection pool."""
    coordinator: Optional[ComplianceCoordinator] = getattr(app.state, "coordinator", None)
    if coordinator is not None:
        await coordinator.aclose()


def _coordinator(request: Request) -> ComplianceCoordinator:
    return request.app.state.coordinator


def _settings(request: Request) -> ReviewSettings:
    return request.app.state.settings


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RuleLoadError)
async def rule_load_error_handler(request: Request, exc: RuleLoadError) -> JSONResponse:
    logger.error("Rule definitions unavailable: %s", exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(ReviewerUnavailableError)
async def reviewer_error_handler(
    request: Request,
    exc: ReviewerUnavailableError,
) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={
            "error": str(exc),
            "reviewer_error": exc.error.model_dump(mode="json"),
        },
    )


# ---------------------------------------------------------------------------
# API Routes
# ---------------------------------------------------------------------------


@app.get("/health", summary="Service health check")
def health_check() -> JSONResponse:
    return JSONResponse(content={"status": "ok", "service": "compliance-review"})


@app.get("/rules", response_model=RuleSet, summary="Current rule definitions")
def get_rules(request: Request) -> RuleSet:
    return _coordinator(request).load_rules()


@app.post("/extract", response_model=ExtractResponse, summary="Extract pages from an upload")
async def extract_pages(
    request: Request,
    file: UploadFile = File(..., description="Plain-text document (form feeds separate pages)"),
) -> ExtractResponse:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    settings = _settings(request)
    if len(data) > settings.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds maximum allowed size of {settings.max_upload_size_mb} MB",
        )

    pages = PlainTextExtractor().extract(file.filename or "", data)
    return ExtractResponse(pages_count=len(pages), pages=pages)


@app.post(
    "/audit",
    response_model=AuditResult,
    response_class=PrettyJSONResponse,
    summary="Run the rule audit",
)
def audit_pages(request: Request, body: PagesBody) -> AuditResult:
    coordinator = _coordinator(request)
    return coordinator.audit(body.pages, coordinator.load_rules())


@app.post(
    "/review",
    response_model=FusedReport,
    response_class=PrettyJSONResponse,
    summary="Review pages in one mode",
)
async def review_pages(request: Request, body: ReviewBody) -> FusedReport:
    coordinator = _coordinator(request)
    ruleset = coordinator.load_rules()
    audit = body.audit or coordinator.audit(body.pages, ruleset)

    return await coordinator.review(
        body.mode or _settings(request).mode,
        body.pages,
        audit,
        coordinator.rules_summary(ruleset),
        scene=body.scene,
        ocr_text=body.ocr_text,
    )


@app.post("/review/stream", summary="Audit and review with streamed progress")
async def review_pages_stream(request: Request, body: ReviewBody):
    """
    Audit and review while streaming progress events (SSE).

    - The review starts with the stream and is cancelled, together with
      its in-flight reviewer calls, when the client disconnects
    - Events do NOT influence execution
    - The final `review_completed` event carries the full outcome
    """
    coordinator = _coordinator(request)
    mode = body.mode or _settings(request).mode
    emitter = MemoryQueueEventEmitter()

    async def run_review_task() -> None:
        try:
            await coordinator.run(
                body.pages,
                mode,
                scene=body.scene,
                ocr_text=body.ocr_text,
                audit_id=str(uuid4()),
                emitter=emitter,
            )
        except Exception:
            # REVIEW_FAILED already emitted by the coordinator
            logger.exception("Streamed review failed")

    async def event_stream():
        task = asyncio.create_task(run_review_task())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

        try:
            async for event in emitter.stream():
                yield event.to_sse_payload()
        finally:
            # the emitter closes itself on the terminal event
            if not task.done() and not emitter.closed:
                logger.info("Stream consumer disconnected; cancelling review")
                task.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@app.post(
    "/explain",
    response_model=Explanation,
    response_class=PrettyJSONResponse,
    summary="Explain one fix",
)
async def explain_fix(request: Request, body: ExplainBody) -> Explanation:
    return await _coordinator(request).explain(body.item)


@app.post(
    "/report",
    response_model=ReviewOutcome,
    response_class=PrettyJSONResponse,
    summary="Audit, report-mode review and readable digest",
)
async def full_report(request: Request, body: PagesBody) -> ReviewOutcome:
    return await _coordinator(request).run(body.pages, ReviewModeName.REPORT)
