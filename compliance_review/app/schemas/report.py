"""
Fused report schema.

These are the terminal artifacts of the review pipeline. They are
built during fusion and frozen on return.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from compliance_review.app.schemas.audit import Issue
from compliance_review.app.schemas.rules import Severity

MAX_QUOTES = 3
MAX_QUOTE_CHARS = 80
MAX_REWRITES = 3
MAX_SUMMARY_ITEMS = 3


class ReviewModeName(str, Enum):
    """Closed set of review modes."""

    REPORT = "report"
    SEMANTIC = "semantic"
    LEGACY = "legacy"


class Scene(str, Enum):
    """Publication context of the reviewed material."""

    INTERNAL_TRAINING = "internal_training"
    OFFLINE_MARKETING = "offline_marketing"
    INTERNET_PUBLISH = "internet_publish"


# ---------------------------------------------------------------------------
# Remediation records
# ---------------------------------------------------------------------------


class Rewrite(BaseModel):
    action: str = Field(..., min_length=1)
    before: str = Field(..., min_length=1)
    after: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")


class Fix(BaseModel):
    """
    Remediation for one or more rule issues sharing (rule_id, page).
    """

    rule_id: str
    page: Optional[int] = None

    quotes: List[str] = Field(
        default_factory=list,
        max_length=MAX_QUOTES,
        description="Original fragments, each at most 80 characters",
    )

    problem: str = ""

    rewrites: List[Rewrite] = Field(
        ...,
        min_length=1,
        max_length=MAX_REWRITES,
    )

    note: str = ""

    synthesized: bool = Field(
        False,
        description="True when built from the rule issue alone (no reviewer rewrite)",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def coverage_key(self) -> tuple:
        return (self.rule_id, self.page)

    @property
    def dedup_key(self) -> tuple:
        # absence fixes carry no quote; their `before` text stands in
        if self.quotes:
            first = self.quotes[0]
        else:
            first = self.rewrites[0].before
        return (self.rule_id, self.page, first[:MAX_QUOTE_CHARS])


class SemanticFinding(BaseModel):
    """A reviewer-only must-fix discovery not derived from any rule."""

    severity: Severity = Severity.HIGH
    must_fix: bool = True
    page: Optional[int] = None
    quotes: List[str] = Field(default_factory=list, max_length=MAX_QUOTES)
    problem: str
    rationale: str = ""
    fix: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _must_fix_high_only(self) -> "SemanticFinding":
        if self.severity != Severity.HIGH or not self.must_fix:
            raise ValueError("Surfaced findings must be high severity and must-fix")
        return self


class ReportSummary(BaseModel):
    overall: str = ""
    top_risks: List[str] = Field(default_factory=list, max_length=MAX_SUMMARY_ITEMS)
    next_actions: List[str] = Field(default_factory=list, max_length=MAX_SUMMARY_ITEMS)

    model_config = ConfigDict(frozen=True, extra="forbid")


class LegacyVerdict(BaseModel):
    rule_id: str
    verdict: str = ""
    quotes: List[str] = Field(default_factory=list, max_length=MAX_QUOTES)
    problem: str = ""
    rewrites: List[Rewrite] = Field(default_factory=list, max_length=MAX_REWRITES)
    notes: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Reviewer diagnostics carried on the report
# ---------------------------------------------------------------------------


class ReviewError(BaseModel):
    """
    Non-fatal reviewer failure attached to a degraded report.

    Mirrors `ReviewerCallError`; `chunk_index` is set for batched calls.
    """

    kind: str
    message: str
    status: Optional[int] = None
    preview: Optional[str] = None
    chunk_index: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class FusedReport(BaseModel):
    mode: ReviewModeName
    summary: ReportSummary = Field(default_factory=ReportSummary)
    fixes: List[Fix] = Field(default_factory=list)
    extra_findings: List[SemanticFinding] = Field(default_factory=list)
    verdicts: List[LegacyVerdict] = Field(default_factory=list)

    reviewer_used: bool = Field(
        False,
        description="True when at least one reviewer call contributed output",
    )

    partial: bool = Field(
        False,
        description="True when some reviewer calls failed and output is incomplete",
    )

    errors: List[ReviewError] = Field(default_factory=list)

    scene: Optional[Scene] = None
    used_legal_refs: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class Explanation(BaseModel):
    rule_id: str
    title: str = ""
    why_risky: List[str] = Field(default_factory=list)
    what_triggered: List[str] = Field(default_factory=list)
    how_to_fix: List[str] = Field(default_factory=list)
    better_wording: List[str] = Field(default_factory=list)
    notes: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


class AuditDigest(BaseModel):
    """Readable digest of rule hits for the presentation layer."""

    pages_count: int
    rule_version: str
    rule_result: Literal["pass", "fail"]
    risk_level: Severity
    top_hits: List[Issue] = Field(default_factory=list)
    hits_by_rule: Dict[str, List[Issue]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")
