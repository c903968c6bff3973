"""
Deduplication of fixes and semantic findings.

Both functions are idempotent: applying them to their own output
returns that output unchanged. The first occurrence of a key keeps its
position.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from compliance_review.app.fusion.normalize import normalize_text
from compliance_review.app.schemas.report import (
    MAX_QUOTE_CHARS,
    MAX_REWRITES,
    Fix,
    SemanticFinding,
)


def merge_fixes(current: Fix, incoming: Fix) -> Fix:
    """
    Merge two fixes sharing a dedup key.

    The fix whose first rewrite has the longer `after` wins (ties keep
    `current`); rewrite lists are merged up to the cap.
    """
    if len(incoming.rewrites[0].after) > len(current.rewrites[0].after):
        winner, loser = incoming, current
    else:
        winner, loser = current, incoming

    rewrites = list(winner.rewrites)
    seen = {(r.before, r.after) for r in rewrites}
    for rewrite in loser.rewrites:
        if len(rewrites) == MAX_REWRITES:
            break
        if (rewrite.before, rewrite.after) not in seen:
            seen.add((rewrite.before, rewrite.after))
            rewrites.append(rewrite)

    return winner.model_copy(
        update={
            "rewrites": rewrites,
            "problem": winner.problem or loser.problem,
            "note": winner.note or loser.note,
            "synthesized": winner.synthesized and loser.synthesized,
        }
    )


def dedupe_fixes(fixes: Sequence[Fix]) -> List[Fix]:
    merged: Dict[tuple, Fix] = {}
    for fix in fixes:
        key = fix.dedup_key
        if key in merged:
            merged[key] = merge_fixes(merged[key], fix)
        else:
            merged[key] = fix
    return list(merged.values())


def finding_key(finding: SemanticFinding) -> tuple:
    first = finding.quotes[0][:MAX_QUOTE_CHARS] if finding.quotes else ""
    return (
        finding.page,
        normalize_text(finding.problem),
        normalize_text(first),
    )


def dedupe_findings(findings: Sequence[SemanticFinding]) -> List[SemanticFinding]:
    """Keep the first finding per (page, problem, first quote), normalized."""
    seen = set()
    out: List[SemanticFinding] = []
    for finding in findings:
        key = finding_key(finding)
        if key in seen:
            continue
        seen.add(key)
        out.append(finding)
    return out


def order_findings(findings: Sequence[SemanticFinding]) -> List[SemanticFinding]:
    """Severity descending, then emission order."""
    return sorted(findings, key=lambda f: -f.severity.rank)
