"""
Review mode assembler.

Wires one strategy object per mode from already-constructed
dependencies. It does NOT construct clients or read configuration
files.
"""

from __future__ import annotations

from typing import Dict, Sequence

from compliance_review.app.config import ReviewSettings
from compliance_review.app.context.legal_refs import LegalRef
from compliance_review.app.modes.base import ReviewMode
from compliance_review.app.modes.legacy import LegacyReview
from compliance_review.app.modes.report import ReportReview
from compliance_review.app.modes.semantic import SemanticReview
from compliance_review.app.reviewer.client import ReviewerClient
from compliance_review.app.schemas.report import ReviewModeName


def build_review_modes(
    *,
    client: ReviewerClient,
    settings: ReviewSettings,
    legal_kb: Sequence[LegalRef] = (),
) -> Dict[ReviewModeName, ReviewMode]:
    limits = settings.context_limits()
    call_timeout_s, chunk_timeout_s, _ = settings.timeouts_s

    return {
        ReviewModeName.REPORT: ReportReview(
            client=client,
            limits=limits,
            timeout_s=call_timeout_s,
        ),
        ReviewModeName.SEMANTIC: SemanticReview(
            client=client,
            limits=limits,
            timeout_s=call_timeout_s,
            chunk_timeout_s=chunk_timeout_s,
            max_concurrency=settings.max_concurrent_calls,
            legal_kb=legal_kb,
            legal_top_n=settings.legal_refs_top_n,
            legal_fallback_ids=settings.legal_fallback_ids,
        ),
        ReviewModeName.LEGACY: LegacyReview(
            client=client,
            limits=limits,
            timeout_s=call_timeout_s,
        ),
    }
