"""Legacy review: one verdict per queued review item."""

from __future__ import annotations

from compliance_review.app.context.builders import ContextLimits, build_legacy_window
from compliance_review.app.events import AuditEvent, AuditEventEmitter, AuditEventType
from compliance_review.app.fusion.legacy import fuse_legacy
from compliance_review.app.modes.base import ReviewInput
from compliance_review.app.modes.prompts import LEGACY_SYSTEM, legacy_user
from compliance_review.app.reviewer.batch import ReviewRequest, run_batch
from compliance_review.app.reviewer.client import ReviewerClient
from compliance_review.app.schemas.document import sort_pages
from compliance_review.app.schemas.payloads import LegacyPayload
from compliance_review.app.schemas.report import FusedReport, ReviewModeName


class LegacyReview:
    mode = ReviewModeName.LEGACY

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
        window = build_legacy_window(
            sort_pages(request.pages),
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
                    "review_items": len(request.audit.review),
                },
            )
        )

        outcome = await run_batch(
            self._client,
            [
                ReviewRequest(
                    index=0,
                    system=LEGACY_SYSTEM,
                    user=legacy_user(window, request.audit.review),
                )
            ],
            timeout_s=self._timeout_s,
            schema=LegacyPayload,
            max_concurrency=1,
            audit_id=request.audit_id,
            emitter=emitter,
        )

        payload = outcome.payloads[0] if outcome.payloads else None
        return fuse_legacy(payload, errors=outcome.errors)
