"""
Semantic review: whole-document scan for high-risk must-fix problems.

Batched by default: pages are partitioned into chunks and reviewed
with bounded concurrency. A failed chunk marks the report partial; the
findings of every successful chunk are kept.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from compliance_review.app.context.builders import ContextLimits, build_context
from compliance_review.app.context.legal_refs import (
    DEFAULT_FALLBACK_IDS,
    DEFAULT_TOP_N,
    LegalRef,
    select_legal_refs,
)
from compliance_review.app.events import AuditEvent, AuditEventEmitter, AuditEventType
from compliance_review.app.fusion.semantic import fuse_semantic
from compliance_review.app.modes.base import ReviewInput
from compliance_review.app.modes.prompts import SEMANTIC_SYSTEM, semantic_user
from compliance_review.app.reviewer.batch import (
    DEFAULT_MAX_CONCURRENCY,
    ReviewRequest,
    run_batch,
)
from compliance_review.app.reviewer.client import ReviewerClient
from compliance_review.app.schemas.payloads import SemanticPayload
from compliance_review.app.schemas.report import FusedReport, ReviewModeName

logger = logging.getLogger(__name__)


class SemanticReview:
    mode = ReviewModeName.SEMANTIC

    def __init__(
        self,
        *,
        client: ReviewerClient,
        limits: ContextLimits,
        timeout_s: float,
        chunk_timeout_s: float,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        legal_kb: Sequence[LegalRef] = (),
        legal_top_n: int = DEFAULT_TOP_N,
        legal_fallback_ids: Sequence[str] = DEFAULT_FALLBACK_IDS,
    ) -> None:
        self._client = client
        self._limits = limits
        self._timeout_s = timeout_s
        self._chunk_timeout_s = chunk_timeout_s
        self._max_concurrency = max_concurrency
        self._legal_kb = list(legal_kb)
        self._legal_top_n = legal_top_n
        self._legal_fallback_ids = tuple(legal_fallback_ids)

    async def review(
        self,
        request: ReviewInput,
        emitter: AuditEventEmitter,
    ) -> FusedReport:
        windows = build_context(
            ReviewModeName.SEMANTIC,
            request.pages,
            request.audit,
            request.rules_summary,
            self._limits,
            ocr_text=request.ocr_text,
        )

        refs = select_legal_refs(
            self._legal_kb,
            request.scene,
            "\n".join(w.text for w in windows),
            top_n=self._legal_top_n,
            fallback_ids=self._legal_fallback_ids,
        )
        ref_ids: List[str] = [r.id for r in refs]

        chunks = sum(1 for w in windows if not w.supplement)

        await emitter.emit(
            AuditEvent(
                audit_id=request.audit_id,
                event_type=AuditEventType.CONTEXT_BUILT,
                details={
                    "mode": self.mode.value,
                    "windows": len(windows),
                    "batched": self._limits.semantic_batched,
                    "legal_refs": ref_ids,
                },
            )
        )

        requests = [
            ReviewRequest(
                index=w.index,
                system=SEMANTIC_SYSTEM,
                user=semantic_user(
                    w,
                    audit=request.audit,
                    scene=request.scene,
                    legal_refs=refs,
                    chunks=chunks,
                ),
            )
            for w in windows
        ]

        # the OCR supplement does not make a sampled run a chunked one
        timeout_s = self._chunk_timeout_s if chunks > 1 else self._timeout_s

        outcome = await run_batch(
            self._client,
            requests,
            timeout_s=timeout_s,
            schema=SemanticPayload,
            max_concurrency=self._max_concurrency,
            audit_id=request.audit_id,
            emitter=emitter,
        )

        if outcome.partial:
            logger.warning(
                "Semantic review partial: %d of %d chunk(s) failed",
                len(outcome.errors),
                len(requests),
            )

        return fuse_semantic(
            outcome.payloads,
            errors=outcome.errors,
            scene=request.scene,
            used_legal_refs=ref_ids,
        )
