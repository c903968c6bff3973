"""
Reviewer prompt assembly.

Each prompt is two layers:
  1. System layer: mode-specific role and output contract (static)
  2. User layer: the bounded context window plus run metadata

The output contract in each system prompt mirrors the payload schema
the response is validated against.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from compliance_review.app.context.builders import ContextWindow
from compliance_review.app.context.legal_refs import LegalRef
from compliance_review.app.schemas.audit import AuditResult, Issue, ReviewItem
from compliance_review.app.schemas.report import Fix, Scene


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def _section(title: str, body: str) -> str:
    return f"【{title}】\n{body}"


def _join(*sections: str) -> str:
    return "\n\n".join(s for s in sections if s).strip()


# ----------------------------------------------------------------------
# System layer
# ----------------------------------------------------------------------

REPORT_SYSTEM = """
You are a compliance re-review assistant for insurance training decks and
marketing material. A deterministic rule audit has already run; you re-check
its issues and propose concrete rewrites. Answer in the language of the
material.

Rules:
1. Never overturn the audit verdict or risk level; only review and rewrite.
2. rules_issues_fix must address every audit issue you are given.
3. Every entry carries at least one quote taken verbatim from the page excerpts.
4. rewrite[0].before is one of the quotes (or a trimmed part of it), never empty.
5. rewrite[0].after is a concrete sentence that can be pasted into the deck.
6. Merge entries sharing rule_id + page + quote into one.
7. Put additional semantic risks in ai_extra, never in rules_issues_fix.

Return strict JSON only:
{
  "rules_issues_fix": [
    {"rule_id": "6-01", "page": 1, "quote": ["..."], "problem": "...",
     "rewrite": [{"action": "replace|delete|add", "before": "...", "after": "..."}],
     "note": ""}
  ],
  "ai_extra": [
    {"severity": "high", "must_fix": true, "page": 1, "quote": ["..."],
     "problem": "...", "why_high": "...", "fix": "..."}
  ],
  "final_summary": {"overall": "", "top_risks": [], "next_actions": []}
}
""".strip()


SEMANTIC_SYSTEM = """
You are a whole-document semantic compliance scanner for insurance training
decks and marketing material. Without overturning the rule audit, report only
problems that are high risk AND must be fixed. Answer in the language of the
material.

You receive page excerpts, the publication scene (internal_training,
offline_marketing or internet_publish) and a short list of legal references
already filtered for that scene.

Rules:
1. Report only items with severity "high" and must_fix true.
2. No medium/low items and no optional style advice.
3. Every item gives page, quote (verbatim, at most 80 characters), problem,
   why_high (may cite legal reference ids) and fix (a sentence ready to paste).

Return strict JSON only:
{
  "semantic_extra": [
    {"severity": "high", "must_fix": true, "page": 1, "quote": ["..."],
     "problem": "...", "why_high": "...", "fix": "..."}
  ]
}
""".strip()


LEGACY_SYSTEM = """
You are a compliance review assistant for insurance marketing and training
material. Give one verdict per listed rule. Return strict JSON only:
{"ai": [{"rule_id": "...", "verdict": "...", "quote": [], "problem": "",
         "rewrite_suggestion": [{"action": "", "before": "", "after": ""}],
         "notes": ""}]}
""".strip()


EXPLAIN_SYSTEM = """
You are a compliance explanation assistant. You receive one flagged item
(rule_id, page, quote, problem, rewrite) and explain it so front-line staff
understand the risk and the fix. Ground every point in the quote and rule id;
do not invent statute numbers. Answer in the language of the item.

Return strict JSON only:
{
  "rule_id": "6-01",
  "title": "one-line summary of the breach",
  "why_risky": ["2-4 points"],
  "what_triggered": ["2-4 points tied to the quote"],
  "how_to_fix": ["2-4 actionable points"],
  "better_wording": ["1-3 sentences ready to paste"],
  "notes": ""
}
""".strip()


# ----------------------------------------------------------------------
# User layer
# ----------------------------------------------------------------------


def _issue_view(issue: Issue) -> dict:
    return {
        "rule_id": issue.rule_id,
        "page": issue.page,
        "hit": issue.hit_text,
        "message": issue.message,
        "suggestion": issue.suggestion,
    }


def report_user(window: ContextWindow) -> str:
    return _join(
        _section("Hit page excerpts", window.text),
        _section("Rule audit issues", _json([_issue_view(i) for i in window.issues])),
        _section("Rules digest", window.rules_summary),
    )


def semantic_user(
    window: ContextWindow,
    *,
    audit: AuditResult,
    scene: Scene,
    legal_refs: Sequence[LegalRef],
    chunks: int = 1,
) -> str:
    if window.supplement:
        scope = "OCR supplement (image text)"
    elif chunks > 1 and window.page_numbers:
        scope = (
            f"chunk {window.index + 1}/{chunks}, "
            f"pages {window.page_numbers[0]}-{window.page_numbers[-1]}"
        )
    else:
        scope = "sampled pages and document tail"

    return _join(
        _section("Scene", scene.value),
        _section("Legal references", _json([r.prompt_view() for r in legal_refs])),
        _section(f"Document text ({scope})", window.text),
        _section(
            "Rule audit overview",
            f"audit.pass={str(audit.passed).lower()}\n"
            f"audit.risk_level={audit.risk_level.value}\n"
            f"issues_count={len(audit.issues)}",
        ),
        _section("Rules digest", window.rules_summary),
    )


def _review_view(item: ReviewItem) -> dict:
    return {
        "rule_id": item.rule_id,
        "title": item.title,
        "severity": item.severity.value,
        "review_points": item.review_points,
        "hit_pages": item.hit_pages,
    }


def legacy_user(window: ContextWindow, review: Sequence[ReviewItem]) -> str:
    return _join(
        _section("Material text", window.text),
        _section("Review items", _json([_review_view(r) for r in review])),
    )


def explain_user(item: Fix) -> str:
    view = item.model_dump(mode="json", exclude={"synthesized"})
    return _section("Flagged item", _json(view))
