"""
Reviewer payload schemas (trust boundary).

The external reviewer returns loosely shaped JSON. Every payload is
validated against one of these models immediately after parsing:

- required containers must have the right type (a string where a list
  is expected is a schema violation)
- scalar noise is normalized (null -> "", numeric ids -> str)
- every array is capped in length, quotes are capped in size

Anything that fails validation is handled exactly like an unparseable
payload by the caller.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from compliance_review.app.schemas.report import (
    MAX_QUOTE_CHARS,
    MAX_QUOTES,
    MAX_REWRITES,
    MAX_SUMMARY_ITEMS,
)

MAX_PAYLOAD_ITEMS = 200


# ----------------------------------------------------------------------
# Lenient scalar coercion
# ----------------------------------------------------------------------


def _loose_str(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _loose_page(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _loose_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return False


def _quotes(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return value
    out = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            out.append(text[:MAX_QUOTE_CHARS])
        if len(out) == MAX_QUOTES:
            break
    return out


def _capped(limit: int):
    def _cap(value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return value[:limit]
        return value

    return _cap


def _text_list(limit: int):
    def _coerce(value: Any) -> Any:
        value = _capped(limit)(value)
        if isinstance(value, list):
            return [str(v) for v in value if v is not None and str(v).strip()]
        return value

    return _coerce


LooseStr = Annotated[str, BeforeValidator(_loose_str)]
LoosePage = Annotated[Optional[int], BeforeValidator(_loose_page)]
LooseBool = Annotated[bool, BeforeValidator(_loose_bool)]
Quotes = Annotated[List[str], BeforeValidator(_quotes)]


_LENIENT = ConfigDict(extra="ignore", frozen=True)


# ----------------------------------------------------------------------
# Shared fragments
# ----------------------------------------------------------------------


class RawRewrite(BaseModel):
    action: LooseStr = ""
    before: LooseStr = ""
    after: LooseStr = ""

    model_config = _LENIENT


RawRewrites = Annotated[List[RawRewrite], BeforeValidator(_capped(MAX_REWRITES))]


class RawFix(BaseModel):
    rule_id: LooseStr = ""
    page: LoosePage = None
    quotes: Quotes = Field(
        default_factory=list,
        validation_alias=AliasChoices("quote", "quotes"),
    )
    problem: LooseStr = ""
    rewrites: RawRewrites = Field(
        default_factory=list,
        validation_alias=AliasChoices("rewrite", "rewrites", "rewrite_suggestion"),
    )
    note: LooseStr = Field(
        "",
        validation_alias=AliasChoices("note", "notes"),
    )

    model_config = _LENIENT


class RawSemanticFinding(BaseModel):
    severity: LooseStr = ""
    must_fix: LooseBool = False
    page: LoosePage = None
    quotes: Quotes = Field(
        default_factory=list,
        validation_alias=AliasChoices("quote", "quotes"),
    )
    problem: LooseStr = ""
    rationale: LooseStr = Field(
        "",
        validation_alias=AliasChoices("why_high", "rationale"),
    )
    fix: LooseStr = ""

    model_config = _LENIENT


class RawSummary(BaseModel):
    overall: LooseStr = ""
    top_risks: Annotated[List[str], BeforeValidator(_text_list(MAX_SUMMARY_ITEMS))] = Field(
        default_factory=list
    )
    next_actions: Annotated[List[str], BeforeValidator(_text_list(MAX_SUMMARY_ITEMS))] = Field(
        default_factory=list
    )

    model_config = _LENIENT


class RawLegacyVerdict(BaseModel):
    rule_id: LooseStr = ""
    page: LoosePage = None
    verdict: LooseStr = ""
    quotes: Quotes = Field(
        default_factory=list,
        validation_alias=AliasChoices("quote", "quotes"),
    )
    problem: LooseStr = ""
    rewrites: RawRewrites = Field(
        default_factory=list,
        validation_alias=AliasChoices("rewrite_suggestion", "rewrite", "rewrites"),
    )
    notes: LooseStr = Field(
        "",
        validation_alias=AliasChoices("notes", "note"),
    )

    model_config = _LENIENT


# ----------------------------------------------------------------------
# Mode payloads
# ----------------------------------------------------------------------


class ReportPayload(BaseModel):
    """
    Report-mode reviewer output.

    `ai` is accepted for reviewers that answer with the legacy shape
    instead of `rules_issues_fix`.
    """

    rules_issues_fix: Annotated[
        List[RawFix], BeforeValidator(_capped(MAX_PAYLOAD_ITEMS))
    ] = Field(default_factory=list)

    ai_extra: Annotated[
        List[RawSemanticFinding], BeforeValidator(_capped(MAX_PAYLOAD_ITEMS))
    ] = Field(default_factory=list)

    final_summary: Optional[RawSummary] = None

    ai: Annotated[
        List[RawLegacyVerdict], BeforeValidator(_capped(MAX_PAYLOAD_ITEMS))
    ] = Field(default_factory=list)

    model_config = _LENIENT


class SemanticPayload(BaseModel):
    semantic_extra: Annotated[
        List[RawSemanticFinding], BeforeValidator(_capped(MAX_PAYLOAD_ITEMS))
    ] = Field(default_factory=list)

    model_config = _LENIENT


class LegacyPayload(BaseModel):
    ai: Annotated[
        List[RawLegacyVerdict], BeforeValidator(_capped(MAX_PAYLOAD_ITEMS))
    ] = Field(default_factory=list)

    model_config = _LENIENT


class ExplainPayload(BaseModel):
    rule_id: LooseStr = ""
    title: LooseStr = ""
    why_risky: Annotated[List[str], BeforeValidator(_text_list(4))] = Field(default_factory=list)
    what_triggered: Annotated[List[str], BeforeValidator(_text_list(4))] = Field(default_factory=list)
    how_to_fix: Annotated[List[str], BeforeValidator(_text_list(4))] = Field(default_factory=list)
    better_wording: Annotated[List[str], BeforeValidator(_text_list(3))] = Field(default_factory=list)
    notes: LooseStr = ""

    model_config = _LENIENT
