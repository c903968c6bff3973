"""
Normalization of raw reviewer records into report records.

Raw records have already passed the payload schema check; this module
applies the report-level rules (caps, mandatory rewrite fields, the
high/must-fix filter) and drops whatever cannot be repaired.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from compliance_review.app.schemas.audit import Issue
from compliance_review.app.schemas.payloads import (
    RawFix,
    RawLegacyVerdict,
    RawRewrite,
    RawSemanticFinding,
)
from compliance_review.app.schemas.report import (
    MAX_QUOTE_CHARS,
    MAX_QUOTES,
    MAX_REWRITES,
    Fix,
    LegacyVerdict,
    Rewrite,
    SemanticFinding,
)
from compliance_review.app.schemas.rules import CheckKind, Severity

DEFAULT_ACTION = "replace"
ADD_ACTION = "add"

_WHITESPACE = re.compile(r"\s+")
_QUOTE_CHARS = re.compile("[\"'“”„‟«»「」『』‘’‚‛＂＇]")


def normalize_text(text: str) -> str:
    """Lowercase, collapse whitespace and canonicalize quote characters."""
    text = _QUOTE_CHARS.sub('"', text or "")
    return _WHITESPACE.sub(" ", text).strip().lower()


def cap_quotes(quotes: Sequence[str]) -> List[str]:
    out = []
    for quote in quotes:
        quote = (quote or "").strip()
        if quote:
            out.append(quote[:MAX_QUOTE_CHARS])
    return out[:MAX_QUOTES]


def normalize_rewrites(
    raw: Sequence[RawRewrite],
    *,
    quotes: Sequence[str],
    fallback_before: str = "",
) -> List[Rewrite]:
    """
    Keep rewrites with a non-empty `after`; fill an empty `before` from
    the first quote (or `fallback_before`).
    """
    default_before = quotes[0] if quotes else fallback_before
    out: List[Rewrite] = []
    for item in raw:
        after = item.after.strip()
        if not after:
            continue
        before = item.before.strip() or default_before
        if not before:
            continue
        out.append(
            Rewrite(
                action=item.action.strip() or DEFAULT_ACTION,
                before=before,
                after=after,
            )
        )
        if len(out) == MAX_REWRITES:
            break
    return out


def normalize_fix(raw: RawFix, *, fallback_before: str = "") -> Optional[Fix]:
    """Convert one reviewer fix; None when it carries no usable rewrite."""
    rule_id = raw.rule_id.strip()
    if not rule_id:
        return None

    quotes = cap_quotes(raw.quotes)
    rewrites = normalize_rewrites(
        raw.rewrites,
        quotes=quotes,
        fallback_before=fallback_before,
    )
    if not rewrites:
        return None

    return Fix(
        rule_id=rule_id,
        page=raw.page,
        quotes=quotes,
        problem=raw.problem.strip(),
        rewrites=rewrites,
        note=raw.note.strip(),
    )


def is_must_fix(raw: RawSemanticFinding) -> bool:
    return raw.must_fix and raw.severity.strip().lower() == Severity.HIGH.value


def normalize_finding(raw: RawSemanticFinding) -> Optional[SemanticFinding]:
    """Apply the high/must-fix filter; None for anything else."""
    if not is_must_fix(raw):
        return None

    quotes = cap_quotes(raw.quotes)
    problem = raw.problem.strip()
    if not problem and not quotes:
        return None

    return SemanticFinding(
        severity=Severity.HIGH,
        must_fix=True,
        page=raw.page,
        quotes=quotes,
        problem=problem,
        rationale=raw.rationale.strip(),
        fix=raw.fix.strip(),
    )


def normalize_verdict(raw: RawLegacyVerdict) -> Optional[LegacyVerdict]:
    rule_id = raw.rule_id.strip()
    if not rule_id:
        return None

    quotes = cap_quotes(raw.quotes)
    return LegacyVerdict(
        rule_id=rule_id,
        verdict=raw.verdict.strip(),
        quotes=quotes,
        problem=raw.problem.strip(),
        rewrites=normalize_rewrites(raw.rewrites, quotes=quotes),
        notes=raw.notes.strip(),
    )


# ----------------------------------------------------------------------
# Issue-derived fixes
# ----------------------------------------------------------------------


def issue_action(issue: Issue) -> str:
    if issue.check_kind in (CheckKind.FORBIDDEN_TERMS, CheckKind.FORBIDDEN_PATTERNS):
        return DEFAULT_ACTION
    return ADD_ACTION


def synthesize_fix(issue: Issue) -> Fix:
    """
    Minimal fix built from the issue alone: hit text (or message) as
    `before`, message as `problem`, suggestion as `after`.
    """
    quotes = cap_quotes([issue.hit_text])
    before = issue.hit_text or issue.message
    after = issue.suggestion or issue.message

    return Fix(
        rule_id=issue.rule_id,
        page=issue.page,
        quotes=quotes,
        problem=issue.message,
        rewrites=[
            Rewrite(
                action=issue_action(issue),
                before=before,
                after=after,
            )
        ],
        synthesized=True,
    )


def fix_from_verdict(issue: Issue, verdict: RawLegacyVerdict) -> Fix:
    """Map a legacy-shaped verdict onto one audit issue."""
    quotes = cap_quotes(verdict.quotes) or cap_quotes([issue.hit_text])
    first = verdict.rewrites[0] if verdict.rewrites else RawRewrite()

    return Fix(
        rule_id=issue.rule_id,
        page=issue.page,
        quotes=quotes,
        problem=verdict.problem.strip() or issue.message,
        rewrites=[
            Rewrite(
                action=first.action.strip() or issue_action(issue),
                before=first.before.strip() or issue.hit_text or issue.message,
                after=first.after.strip() or issue.suggestion or issue.message,
            )
        ],
        note=verdict.notes.strip(),
    )
