from __future__ import annotations

from pathlib import Path
from typing import List

from compliance_review.app.events.models import AuditEvent
from compliance_review.app.schemas.document import Page
from compliance_review.app.schemas.rules import RuleSet

REPO_ROOT = Path(__file__).resolve().parents[2]
SAMPLE_RULES = REPO_ROOT / "rules" / "rules.json"
SAMPLE_LEGAL_KB = REPO_ROOT / "legal" / "legal_kb.json"


def make_pages(*texts: str) -> List[Page]:
    return [Page(number=i, text=t) for i, t in enumerate(texts, start=1)]


def make_ruleset(*rules: dict, version: str = "test-1") -> RuleSet:
    return RuleSet.model_validate({"version": version, "rules": list(rules)})


def forbidden_rule(rule_id: str, *terms: str, severity: str = "high") -> dict:
    return {
        "id": rule_id,
        "severity": severity,
        "title": f"Rule {rule_id}",
        "auto_checks": [{"type": "forbidden_terms", "terms": list(terms)}],
    }


def global_disclosure_rule(rule_id: str, *candidates: str, severity: str = "medium") -> dict:
    return {
        "id": rule_id,
        "severity": severity,
        "title": f"Rule {rule_id}",
        "auto_checks": [
            {
                "type": "must_have_any",
                "scope": "global",
                "candidates": list(candidates),
            }
        ],
    }


class ListEmitter:
    """Non-blocking emitter that records events."""

    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)
