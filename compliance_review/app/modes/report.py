"""
Report review: reviewer rewrites for rule issues, with coverage repair.

Reviewer failure degrades the report to rule-only fixes; it never
fails the review.
"""

from __future__ import annotations

import logging

from compliance_review.app.context.builders import ContextLimits, build_report_window
from compliance_review.app.events import AuditEvent, AuditEventEmitter, AuditEventType
from compliance_review.app.fusion.report import fuse_report
from compliance_review.app.modes.base import ReviewInput
from compliance_review.app.modes.prompts import REPORT_SYSTEM, report_user
from compliance_review.app.reviewer.batch import ReviewRequest, run_batch
from compliance_review.app.reviewer.client import ReviewerClient
from compliance_review.app.schemas.document import sort_pages
from compliance_review.app.schemas.payloads import ReportPayload
from compliance_review.app.schemas.report import FusedReport, ReviewModeName

logger = logging.getLogger(__name__)


class ReportReview:
    mode = ReviewModeName.REPORT

    def __init__(
        self,
        *,
        client: ReviewerClient,
        limits: ContextLimits,
        timeout_s: float,
    ) -> None:
        self._client = client
        self._limits = limits
        self._timeout_s = timeout_s

    async def review(
        self,
        request: ReviewInput,
        emitter: AuditEventEmitter,
    ) -> FusedReport:
        audit = request.audit

        if not audit.issues:
            logger.info("Report review skipped reviewer call: no rule issues")
            return fuse_report(audit, None)

        window = build_report_window(
            sort_pages(request.pages),
            audit,
            request.rules_summary[: self._limits.rules_summary_cap],
            self._limits,
            ocr_text=request.ocr_text,
        )

        await emitter.emit(
            AuditEvent(
                audit_id=request.audit_id,
                event_type=AuditEventType.CONTEXT_BUILT,
                details={
                    "mode": self.mode.value,
                    "windows": 1,
                    "issues_sent": len(window.issues),
                    "pages": window.page_numbers,
                },
            )
        )

        outcome = await run_batch(
            self._client,
            [ReviewRequest(index=0, system=REPORT_SYSTEM, user=report_user(window))],
            timeout_s=self._timeout_s,
            schema=ReportPayload,
            max_concurrency=1,
            audit_id=request.audit_id,
            emitter=emitter,
        )

        payload = outcome.payloads[0] if outcome.payloads else None
        return fuse_report(audit, payload, errors=outcome.errors)
