from __future__ import annotations

from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from compliance_review.app.events import AuditEventEmitter
from compliance_review.app.schemas.audit import AuditResult
from compliance_review.app.schemas.document import Page
from compliance_review.app.schemas.report import FusedReport, ReviewModeName, Scene


class ReviewInput(BaseModel):
    """
    Immutable inputs of one review run.

    `rules_summary` is computed once per run and shared by every
    reviewer call of that run.
    """

    pages: List[Page]
    audit: AuditResult
    rules_summary: str = ""

    scene: Scene = Scene.INTERNAL_TRAINING
    ocr_text: Optional[str] = Field(
        None,
        description="Optional text recognized from page images",
    )

    audit_id: str = Field(..., description="Request-scoped identifier")

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReviewMode(Protocol):
    """
    One review strategy per mode.

    A mode:
    - builds its own context windows
    - calls the reviewer once per window
    - fuses reviewer output with the audit
    - never raises for reviewer failure (the report is degraded instead)
    """

    mode: ReviewModeName

    async def review(
        self,
        request: ReviewInput,
        emitter: AuditEventEmitter,
    ) -> FusedReport:
        ...
