"""Readable rule-hit digest for the presentation layer."""

from __future__ import annotations

from typing import Dict, List

from compliance_review.app.schemas.audit import AuditResult, Issue
from compliance_review.app.schemas.report import AuditDigest

TOP_HITS = 10


def build_digest(audit: AuditResult, top_n: int = TOP_HITS) -> AuditDigest:
    ranked = sorted(audit.issues, key=lambda i: -i.severity.rank)

    by_rule: Dict[str, List[Issue]] = {}
    for issue in audit.issues:
        by_rule.setdefault(issue.rule_id, []).append(issue)

    return AuditDigest(
        pages_count=audit.pages_count,
        rule_version=audit.rule_version,
        rule_result="pass" if audit.passed else "fail",
        risk_level=audit.risk_level,
        top_hits=ranked[:top_n],
        hits_by_rule=by_rule,
    )
