"""
Semantic-mode fusion.

Only high-severity must-fix findings survive. Chunk payloads are
consumed in chunk order, so the output is independent of the order in
which reviewer calls completed.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from compliance_review.app.fusion.dedup import dedupe_findings, order_findings
from compliance_review.app.fusion.normalize import normalize_finding
from compliance_review.app.schemas.payloads import RawSemanticFinding, SemanticPayload
from compliance_review.app.schemas.report import (
    FusedReport,
    ReviewError,
    ReviewModeName,
    Scene,
    SemanticFinding,
)

logger = logging.getLogger(__name__)


def filter_findings(raw: Iterable[RawSemanticFinding]) -> List[SemanticFinding]:
    kept = (normalize_finding(item) for item in raw)
    return [finding for finding in kept if finding is not None]


def fuse_semantic(
    payloads: Sequence[SemanticPayload],
    *,
    errors: Sequence[ReviewError] = (),
    scene: Optional[Scene] = None,
    used_legal_refs: Sequence[str] = (),
) -> FusedReport:
    """
    Merge per-chunk semantic payloads (already in chunk order).

    `payloads` holds successful chunks only; failed chunks appear in
    `errors` and mark the report partial.
    """
    candidates: List[RawSemanticFinding] = []
    for payload in payloads:
        candidates.extend(payload.semantic_extra)

    findings = order_findings(dedupe_findings(filter_findings(candidates)))

    logger.debug(
        "Semantic fusion: chunks=%d candidates=%d kept=%d errors=%d",
        len(payloads),
        len(candidates),
        len(findings),
        len(errors),
    )

    return FusedReport(
        mode=ReviewModeName.SEMANTIC,
        extra_findings=findings,
        reviewer_used=bool(payloads),
        partial=bool(errors),
        errors=list(errors),
        scene=scene,
        used_legal_refs=list(used_legal_refs),
    )
