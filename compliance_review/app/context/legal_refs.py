"""
Legal knowledge-base references for semantic review.

The knowledge base is an optional JSON document `{"items": [...]}`.
Entries are filtered by publication scene and ranked by keyword hits in
the sampled review text. A missing or malformed knowledge base degrades
to "no references"; it never fails a review.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from compliance_review.app.schemas.report import Scene

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 12
DEFAULT_FALLBACK_IDS = ("R-01", "R-02", "R-03", "R-04", "R-11")


class LegalRef(BaseModel):
    id: str
    title: str = ""
    source: str = ""
    basis: str = ""
    rule: str = ""

    keywords: List[str] = Field(default_factory=list)
    scope: List[str] = Field(
        default_factory=list,
        description="Scenes this entry applies to (empty = all scenes)",
    )
    exclude_scope: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")

    def applies_to(self, scene: Scene) -> bool:
        if scene.value in self.exclude_scope:
            return False
        return not self.scope or scene.value in self.scope

    def prompt_view(self) -> dict:
        """Fields shown to the reviewer."""
        return self.model_dump(include={"id", "title", "source", "basis", "rule"})


class LegalKnowledgeBase(BaseModel):
    items: List[LegalRef] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")


def load_legal_kb(path: Optional[Path]) -> List[LegalRef]:
    """Load knowledge-base entries; any failure yields an empty list."""
    if path is None:
        return []
    try:
        raw = Path(path).read_text(encoding="utf-8")
        return list(LegalKnowledgeBase.model_validate(json.loads(raw)).items)
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning("Legal knowledge base unavailable at %s: %s", path, exc)
        return []


def score_ref(text_lower: str, ref: LegalRef) -> int:
    score = 0
    for keyword in ref.keywords:
        if keyword and keyword.lower() in text_lower:
            score += 3

    title = ref.title.lower()
    if title and title in text_lower:
        score += 2

    if any(k and k.lower() in text_lower for k in ref.keywords[:3]):
        score += 1

    return score


def select_legal_refs(
    items: Iterable[LegalRef],
    scene: Scene,
    text: str,
    *,
    top_n: int = DEFAULT_TOP_N,
    fallback_ids: Sequence[str] = DEFAULT_FALLBACK_IDS,
) -> List[LegalRef]:
    """
    Pick at most `top_n` scene-applicable entries ranked by score.

    Ties keep knowledge-base order. With no hits at all, the configured
    fallback entries are returned instead.
    """
    applicable = [ref for ref in items if ref.applies_to(scene)]
    lower = (text or "").lower()

    scored = [(score_ref(lower, ref), ref) for ref in applicable]
    scored = [pair for pair in scored if pair[0] > 0]

    if not scored:
        fallback = set(fallback_ids)
        return [ref for ref in applicable if ref.id in fallback][:top_n]

    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [ref for _, ref in scored[:top_n]]
