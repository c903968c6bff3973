"""
Rule definition schema.

Rules are loaded from an externally maintained, versioned JSON document
and are read-only for the duration of an audit run.

Regex policy:
- Every `forbidden_patterns` entry is compiled exactly once, when the
  check is constructed.
- Patterns that fail to compile are logged and skipped. A malformed
  pattern never fails rule loading or evaluation.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    """
    Severity of a rule (and of the issues it produces).

    Ordering is intentional: HIGH outranks MEDIUM outranks LOW.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
}


class CheckKind(str, Enum):
    FORBIDDEN_TERMS = "forbidden_terms"
    FORBIDDEN_PATTERNS = "forbidden_patterns"
    MUST_HAVE_ANY = "must_have_any"
    MUST_HAVE_IF_CONTAINS = "must_have_if_contains"


class CheckScope(str, Enum):
    PER_PAGE = "page"
    GLOBAL = "global"


# ---------------------------------------------------------------------------
# Checks (tagged union on `type`)
# ---------------------------------------------------------------------------


class _CheckBase(BaseModel):
    message: Optional[str] = Field(
        None,
        description="Optional issue message overriding the generated default",
    )

    suggestion: Optional[str] = Field(
        None,
        description="Optional remediation text overriding the generated default",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class ForbiddenTermsCheck(_CheckBase):
    """Fails once per distinct literal term found on a page."""

    type: Literal["forbidden_terms"] = "forbidden_terms"
    terms: List[str] = Field(..., min_length=1)

    @property
    def kind(self) -> CheckKind:
        return CheckKind.FORBIDDEN_TERMS

    def unique_terms(self) -> List[str]:
        seen = set()
        out = []
        for term in self.terms:
            if term and term not in seen:
                seen.add(term)
                out.append(term)
        return out


class ForbiddenPatternsCheck(_CheckBase):
    """Fails once per distinct regex match on a page."""

    type: Literal["forbidden_patterns"] = "forbidden_patterns"
    patterns: List[str] = Field(..., min_length=1)

    _compiled: List[re.Pattern] = PrivateAttr(default_factory=list)
    _invalid: List[str] = PrivateAttr(default_factory=list)

    @property
    def kind(self) -> CheckKind:
        return CheckKind.FORBIDDEN_PATTERNS

    def model_post_init(self, __context) -> None:
        compiled = []
        invalid = []
        for pattern in self.patterns:
            try:
                compiled.append(re.compile(pattern))
            except re.error as exc:
                logger.warning("Skipping invalid rule pattern %r: %s", pattern, exc)
                invalid.append(pattern)
        self._compiled = compiled
        self._invalid = invalid

    @property
    def compiled_patterns(self) -> List[re.Pattern]:
        return list(self._compiled)

    @property
    def invalid_patterns(self) -> List[str]:
        return list(self._invalid)


class MustHaveAnyCheck(_CheckBase):
    """
    Fails when none of `candidates` appears in the scoped text.

    `page` scope evaluates every page; `global` scope evaluates the
    whole document once.
    """

    type: Literal["must_have_any"] = "must_have_any"
    candidates: List[str] = Field(..., min_length=1)
    scope: CheckScope = CheckScope.PER_PAGE

    @property
    def kind(self) -> CheckKind:
        return CheckKind.MUST_HAVE_ANY


class MustHaveIfContainsCheck(_CheckBase):
    """
    Fails on a page that contains a trigger but none of `required`.

    Both sides are scoped to the same page.
    """

    type: Literal["must_have_if_contains"] = "must_have_if_contains"
    triggers: List[str] = Field(..., min_length=1)
    required: List[str] = Field(..., min_length=1)

    @property
    def kind(self) -> CheckKind:
        return CheckKind.MUST_HAVE_IF_CONTAINS


Check = Annotated[
    Union[
        ForbiddenTermsCheck,
        ForbiddenPatternsCheck,
        MustHaveAnyCheck,
        MustHaveIfContainsCheck,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class Rule(BaseModel):
    id: str = Field(..., min_length=1)
    severity: Severity
    title: str = Field(..., min_length=1)

    instruction: str = Field(
        "",
        description="Free-text guidance passed to the reviewer digest",
    )

    checks: List[Check] = Field(
        default_factory=list,
        alias="auto_checks",
        description="Ordered automatic checks",
    )

    review_points: List[str] = Field(
        default_factory=list,
        description="Guidance for reviewer/human judgment",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )


class RuleSet(BaseModel):
    """A versioned rule-definitions document."""

    version: str = Field(..., min_length=1)
    rules: List[Rule] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _unique_rule_ids(self) -> "RuleSet":
        seen = set()
        for rule in self.rules:
            if rule.id in seen:
                raise ValueError(f"Duplicate rule id: {rule.id}")
            seen.add(rule.id)
        return self

    def get(self, rule_id: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None
