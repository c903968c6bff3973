"""
Rule-engine output schema.

Issues, review items and the audit result are produced once per audit
run and never mutated afterwards.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from compliance_review.app.schemas.rules import CheckKind, Severity


class Issue(BaseModel):
    """
    A concrete rule-check failure.

    `page` is None only for whole-document issues that cannot be anchored.
    """

    page: Optional[int] = Field(
        None,
        description="Page number the issue is anchored to (None = whole document)",
    )

    rule_id: str
    severity: Severity
    check_kind: CheckKind

    hit_text: str = Field(
        "",
        description="Matched text (empty for absence checks)",
    )

    message: str
    suggestion: str

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @property
    def coverage_key(self) -> tuple:
        return (self.rule_id, self.page)


class ReviewItem(BaseModel):
    """
    A rule queued for reviewer/human judgment.

    This is guidance, not a pass/fail verdict.
    """

    rule_id: str
    title: str
    severity: Severity
    review_points: List[str] = Field(default_factory=list)

    hit_pages: List[int] = Field(
        default_factory=list,
        description="Pages on which this rule produced issues",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class AuditResult(BaseModel):
    passed: bool = Field(
        ...,
        validation_alias=AliasChoices("pass", "passed"),
        serialization_alias="pass",
        description="True when no issues were found",
    )

    risk_level: Severity
    rule_version: str
    issues: List[Issue] = Field(default_factory=list)
    review: List[ReviewItem] = Field(default_factory=list)
    pages_count: int = Field(0, ge=0)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )
