"""Legacy-mode fusion: one verdict per rule id, no coverage enforcement."""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from compliance_review.app.fusion.normalize import normalize_verdict
from compliance_review.app.schemas.payloads import LegacyPayload
from compliance_review.app.schemas.report import (
    FusedReport,
    LegacyVerdict,
    ReviewError,
    ReviewModeName,
)


def fuse_legacy(
    payload: Optional[LegacyPayload],
    *,
    errors: Sequence[ReviewError] = (),
) -> FusedReport:
    verdicts: Dict[str, LegacyVerdict] = {}
    if payload:
        for raw in payload.ai:
            verdict = normalize_verdict(raw)
            # first verdict per rule wins
            if verdict is not None and verdict.rule_id not in verdicts:
                verdicts[verdict.rule_id] = verdict

    return FusedReport(
        mode=ReviewModeName.LEGACY,
        verdicts=list(verdicts.values()),
        reviewer_used=payload is not None,
        partial=bool(errors),
        errors=list(errors),
    )
