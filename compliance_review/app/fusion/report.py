"""
Report-mode fusion.

IMPORTANT:
- Every audit issue is covered by a fix keyed by (rule_id, page) on
  return, whether or not the reviewer answered.
- Coverage gaps are repaired by synthesizing a fix from the issue.
  Synthesized fixes are never merged with each other, so a report with
  no reviewer output carries exactly one fix per issue.
- Fixes follow the order of the issues they derive from; reviewer
  fixes with no matching issue come last.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from compliance_review.app.fusion.dedup import (
    dedupe_findings,
    dedupe_fixes,
    order_findings,
)
from compliance_review.app.fusion.normalize import (
    fix_from_verdict,
    normalize_finding,
    normalize_fix,
    synthesize_fix,
)
from compliance_review.app.schemas.audit import AuditResult, Issue
from compliance_review.app.schemas.payloads import ReportPayload, RawSummary
from compliance_review.app.schemas.report import (
    MAX_SUMMARY_ITEMS,
    Fix,
    FusedReport,
    ReportSummary,
    ReviewError,
    ReviewModeName,
    SemanticFinding,
)

logger = logging.getLogger(__name__)


def fuse_report(
    audit: AuditResult,
    payload: Optional[ReportPayload],
    *,
    errors: Sequence[ReviewError] = (),
) -> FusedReport:
    """
    Merge reviewer output with rule issues.

    `payload` is None when the reviewer call failed; the report is then
    built from the audit alone.
    """
    candidates = reviewer_fixes(audit.issues, payload) if payload else []

    covered = {fix.coverage_key for fix in candidates}
    synthesized = [
        synthesize_fix(issue)
        for issue in audit.issues
        if issue.coverage_key not in covered
    ]

    # one synthesized fix per uncovered issue, even when two issues share a quote
    fixes = order_fixes(dedupe_fixes(candidates) + synthesized, audit.issues)

    extra: List[SemanticFinding] = []
    if payload:
        kept = (normalize_finding(raw) for raw in payload.ai_extra)
        extra = order_findings(dedupe_findings([f for f in kept if f is not None]))

    summary = reviewer_summary(payload.final_summary) if payload else None
    if summary is None:
        summary = synthesize_summary(audit)

    logger.debug(
        "Report fusion: issues=%d reviewer_fixes=%d synthesized=%d fixes=%d",
        len(audit.issues),
        len(candidates),
        len(synthesized),
        len(fixes),
    )

    return FusedReport(
        mode=ReviewModeName.REPORT,
        summary=summary,
        fixes=fixes,
        extra_findings=extra,
        reviewer_used=payload is not None,
        partial=bool(errors),
        errors=list(errors),
    )


# ----------------------------------------------------------------------
# Reviewer candidates
# ----------------------------------------------------------------------


def reviewer_fixes(issues: Sequence[Issue], payload: ReportPayload) -> List[Fix]:
    """
    Candidate fixes from `rules_issues_fix`, or from a legacy-shaped
    `ai` verdict list when the former is empty.
    """
    fallback = _fallback_before(issues)

    fixes: List[Fix] = []
    for raw in payload.rules_issues_fix:
        fix = normalize_fix(
            raw,
            fallback_before=fallback.get((raw.rule_id.strip(), raw.page), ""),
        )
        if fix is not None:
            fixes.append(fix)

    if fixes or not payload.ai:
        return fixes

    verdicts = {}
    for verdict in payload.ai:
        rule_id = verdict.rule_id.strip()
        if rule_id and rule_id not in verdicts:
            verdicts[rule_id] = verdict

    return [
        fix_from_verdict(issue, verdicts[issue.rule_id])
        for issue in issues
        if issue.rule_id in verdicts
    ]


def _fallback_before(issues: Iterable[Issue]) -> Dict[tuple, str]:
    out: Dict[tuple, str] = {}
    for issue in issues:
        out.setdefault(issue.coverage_key, issue.hit_text or issue.message)
    return out


def order_fixes(fixes: Sequence[Fix], issues: Sequence[Issue]) -> List[Fix]:
    first_index: Dict[tuple, int] = {}
    for index, issue in enumerate(issues):
        first_index.setdefault(issue.coverage_key, index)

    tail = len(issues)
    return sorted(fixes, key=lambda f: first_index.get(f.coverage_key, tail))


# ----------------------------------------------------------------------
# Summary
# ----------------------------------------------------------------------


def reviewer_summary(raw: Optional[RawSummary]) -> Optional[ReportSummary]:
    if raw is None:
        return None
    if not (raw.overall.strip() or raw.top_risks or raw.next_actions):
        return None
    return ReportSummary(
        overall=raw.overall.strip(),
        top_risks=list(raw.top_risks),
        next_actions=list(raw.next_actions),
    )


def synthesize_summary(audit: AuditResult) -> ReportSummary:
    """Summary derived from the rule audit alone."""
    if not audit.issues:
        return ReportSummary(overall="No rule issues found.")

    ranked = sorted(audit.issues, key=lambda i: -i.severity.rank)

    return ReportSummary(
        overall=(
            f"{len(audit.issues)} rule issue(s) found; "
            f"risk level {audit.risk_level.value}."
        ),
        top_risks=_distinct(i.message for i in ranked),
        next_actions=_distinct(i.suggestion for i in ranked),
    )


def _distinct(values: Iterable[str]) -> List[str]:
    out: List[str] = []
    for value in values:
        if value and value not in out:
            out.append(value)
        if len(out) == MAX_SUMMARY_ITEMS:
            break
    return out
