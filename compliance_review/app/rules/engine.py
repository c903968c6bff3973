"""
Deterministic rule evaluation.

IMPORTANT:
- This module contains NO probabilistic logic and performs NO I/O.
- Evaluation is a pure function of (pages, ruleset).
- A `global`-scope check emits at most one Issue per rule per run.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from compliance_review.app.schemas.audit import AuditResult, Issue, ReviewItem
from compliance_review.app.schemas.document import Page, sort_pages
from compliance_review.app.schemas.rules import (
    CheckKind,
    CheckScope,
    ForbiddenPatternsCheck,
    ForbiddenTermsCheck,
    MustHaveAnyCheck,
    MustHaveIfContainsCheck,
    Rule,
    RuleSet,
    Severity,
)

logger = logging.getLogger(__name__)

PAGE_JOINER = "\n"


# ----------------------------------------------------------------------
# Public entry point
# ----------------------------------------------------------------------


def evaluate(pages: Iterable[Page], ruleset: RuleSet) -> AuditResult:
    """
    Evaluate every rule check against the given pages.

    Issues are emitted in rule order, then check order, then page order.
    """

    ordered = sort_pages(list(pages))
    full_text = PAGE_JOINER.join(p.text for p in ordered)
    anchor_page = ordered[0].number if ordered else None

    issues: List[Issue] = []
    review: List[ReviewItem] = []

    for rule in ruleset.rules:
        rule_issues = _evaluate_rule(rule, ordered, full_text, anchor_page)
        issues.extend(rule_issues)

        if rule.review_points:
            review.append(
                ReviewItem(
                    rule_id=rule.id,
                    title=rule.title,
                    severity=rule.severity,
                    review_points=list(rule.review_points),
                    hit_pages=_hit_pages(rule_issues),
                )
            )

    logger.debug(
        "Evaluated %d rules over %d pages: %d issues",
        len(ruleset.rules),
        len(ordered),
        len(issues),
    )

    return AuditResult(
        passed=not issues,
        risk_level=risk_level(issues),
        rule_version=ruleset.version,
        issues=issues,
        review=review,
        pages_count=len(ordered),
    )


def risk_level(issues: Iterable[Issue]) -> Severity:
    """High if any high issue, medium if any issue at all, else low."""
    found = False
    for issue in issues:
        if issue.severity == Severity.HIGH:
            return Severity.HIGH
        found = True
    return Severity.MEDIUM if found else Severity.LOW


# ----------------------------------------------------------------------
# Per-rule evaluation
# ----------------------------------------------------------------------


def _evaluate_rule(
    rule: Rule,
    pages: List[Page],
    full_text: str,
    anchor_page: Optional[int],
) -> List[Issue]:
    out: List[Issue] = []

    for check in rule.checks:
        if isinstance(check, ForbiddenTermsCheck):
            for page in pages:
                for term in check.unique_terms():
                    if term in page.text:
                        out.append(
                            _issue(
                                rule,
                                check.kind,
                                page.number,
                                hit_text=term,
                                message=check.message
                                or f"Forbidden expression: {term}",
                                suggestion=check.suggestion
                                or f"Remove or reword \"{term}\"",
                            )
                        )

        elif isinstance(check, ForbiddenPatternsCheck):
            for page in pages:
                for hit in _distinct_matches(check, page.text):
                    out.append(
                        _issue(
                            rule,
                            check.kind,
                            page.number,
                            hit_text=hit,
                            message=check.message
                            or f"Forbidden expression: {hit}",
                            suggestion=check.suggestion
                            or f"Remove or reword \"{hit}\"",
                        )
                    )

        elif isinstance(check, MustHaveAnyCheck):
            message = check.message or (
                "Missing required disclosure (any of: "
                f"{', '.join(check.candidates)})"
            )
            suggestion = check.suggestion or (
                f"Add one of: {', '.join(check.candidates)}"
            )

            if check.scope == CheckScope.GLOBAL:
                if not _contains_any(full_text, check.candidates):
                    out.append(
                        _issue(
                            rule,
                            check.kind,
                            anchor_page,
                            message=message,
                            suggestion=suggestion,
                        )
                    )
            else:
                for page in pages:
                    if not _contains_any(page.text, check.candidates):
                        out.append(
                            _issue(
                                rule,
                                check.kind,
                                page.number,
                                message=message,
                                suggestion=suggestion,
                            )
                        )

        elif isinstance(check, MustHaveIfContainsCheck):
            for page in pages:
                trigger = _first_present(page.text, check.triggers)
                if trigger is None:
                    continue
                if _contains_any(page.text, check.required):
                    continue
                out.append(
                    _issue(
                        rule,
                        check.kind,
                        page.number,
                        hit_text=trigger,
                        message=check.message
                        or (
                            f"\"{trigger}\" requires an accompanying disclosure "
                            f"(any of: {', '.join(check.required)})"
                        ),
                        suggestion=check.suggestion
                        or f"Add one of: {', '.join(check.required)}",
                    )
                )

    return out


def _issue(
    rule: Rule,
    kind: CheckKind,
    page: Optional[int],
    *,
    message: str,
    suggestion: str,
    hit_text: str = "",
) -> Issue:
    return Issue(
        page=page,
        rule_id=rule.id,
        severity=rule.severity,
        check_kind=kind,
        hit_text=hit_text,
        message=message,
        suggestion=suggestion,
    )


# ----------------------------------------------------------------------
# Matching helpers
# ----------------------------------------------------------------------


def _distinct_matches(check: ForbiddenPatternsCheck, text: str) -> List[str]:
    seen = set()
    out: List[str] = []
    for pattern in check.compiled_patterns:
        for match in pattern.finditer(text):
            hit = match.group(0)
            if not hit or hit in seen:
                continue
            seen.add(hit)
            out.append(hit)
    return out


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    return any(n and n in text for n in needles)


def _first_present(text: str, needles: Iterable[str]) -> Optional[str]:
    for needle in needles:
        if needle and needle in text:
            return needle
    return None


def _hit_pages(issues: Iterable[Issue]) -> List[int]:
    pages: Dict[int, None] = {}
    for issue in issues:
        if issue.page is not None:
            pages.setdefault(issue.page, None)
    return sorted(pages)
