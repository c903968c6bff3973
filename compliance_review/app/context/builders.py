"""
Mode-specific reviewer context construction.

IMPORTANT:
- Context building is deterministic and performs NO I/O.
- Every window's text is bounded by its `budget_chars`.
- The rules digest is truncated once and shared by every window of a run.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from compliance_review.app.context.truncation import (
    BLOCK_SEPARATOR,
    TAIL_MARKER,
    join_blocks,
    page_block,
    tail_sample,
    truncate_chars,
)
from compliance_review.app.schemas.audit import AuditResult, Issue
from compliance_review.app.schemas.document import Page, sort_pages
from compliance_review.app.schemas.report import ReviewModeName

logger = logging.getLogger(__name__)

OCR_MARKER = "【OCR补充】"

DEFAULT_SEMANTIC_KEYWORDS: Tuple[str, ...] = (
    "保本",
    "收益",
    "利息",
    "稳赚",
    "替代存款",
    "第一",
    "最好",
    "唯一",
    "限时",
    "错过",
    "马上",
    "确保",
    "零风险",
    "100%",
)


# ----------------------------------------------------------------------
# Models
# ----------------------------------------------------------------------


class ContextLimits(BaseModel):
    """Caps and sampling parameters used to bound reviewer context."""

    report_issue_limit: int = Field(5, ge=1)
    report_page_cap: int = Field(800, ge=1)
    report_total_cap: int = Field(6000, ge=1)

    semantic_lead_pages: int = Field(6, ge=0)
    semantic_keyword_scan_pages: int = Field(60, ge=0)
    semantic_page_cap: int = Field(900, ge=1)
    semantic_tail_chars: int = Field(8000, ge=0)
    semantic_total_cap: int = Field(9000, ge=1)
    semantic_keywords: Tuple[str, ...] = DEFAULT_SEMANTIC_KEYWORDS

    semantic_batched: bool = True
    batch_page_size: int = Field(15, ge=1)

    legacy_total_cap: int = Field(9000, ge=1)
    rules_summary_cap: int = Field(800, ge=0)

    ocr_supplement_cap: int = Field(
        1500,
        ge=0,
        description="Share of a single-window total reserved for OCR text",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


class ContextWindow(BaseModel):
    """
    One bounded unit of reviewer input. Exactly one reviewer call is
    made per window.
    """

    index: int = Field(0, ge=0)
    text: str
    budget_chars: int = Field(..., ge=0)

    page_numbers: List[int] = Field(
        default_factory=list,
        description="Pages represented in `text`, in order",
    )

    issues: List[Issue] = Field(
        default_factory=list,
        description="Rule issues this window asks the reviewer about (report mode)",
    )

    rules_summary: str = ""
    supplement: bool = Field(
        False,
        description="True for the OCR supplement window",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------


def build_context(
    mode: ReviewModeName,
    pages: Sequence[Page],
    audit: AuditResult,
    rules_summary: str,
    limits: Optional[ContextLimits] = None,
    *,
    ocr_text: Optional[str] = None,
) -> List[ContextWindow]:
    limits = limits or ContextLimits()
    ordered = sort_pages(list(pages))
    digest = truncate_chars(rules_summary or "", limits.rules_summary_cap)

    if mode == ReviewModeName.REPORT:
        windows = [
            build_report_window(ordered, audit, digest, limits, ocr_text=ocr_text)
        ]
    elif mode == ReviewModeName.SEMANTIC:
        if limits.semantic_batched:
            windows = build_semantic_batches(ordered, digest, limits)
        else:
            windows = [build_semantic_sample(ordered, digest, limits)]
        if ocr_text and ocr_text.strip():
            windows.append(
                _ocr_window(len(windows), ocr_text, digest, limits.semantic_total_cap)
            )
    else:
        windows = [build_legacy_window(ordered, digest, limits, ocr_text=ocr_text)]

    logger.debug(
        "Built %d context window(s) for mode=%s",
        len(windows),
        mode.value,
    )
    return windows


# ----------------------------------------------------------------------
# Report
# ----------------------------------------------------------------------


def dedupe_issues(issues: Sequence[Issue]) -> List[Issue]:
    """Drop exact repeats on (rule_id, page, check_kind, hit_text, message)."""
    seen = set()
    out: List[Issue] = []
    for issue in issues:
        key = (
            issue.rule_id,
            issue.page,
            issue.check_kind,
            issue.hit_text,
            issue.message,
        )
        if key in seen:
            continue
        seen.add(key)
        out.append(issue)
    return out


def build_report_window(
    pages: Sequence[Page],
    audit: AuditResult,
    rules_summary: str,
    limits: ContextLimits,
    *,
    ocr_text: Optional[str] = None,
) -> ContextWindow:
    selected = dedupe_issues(audit.issues)[: limits.report_issue_limit]
    by_number = _index_pages(pages)

    numbers: List[int] = []
    for issue in selected:
        if issue.page is not None and issue.page in by_number and issue.page not in numbers:
            numbers.append(issue.page)

    blocks = [
        page_block(n, by_number[n].text, limits.report_page_cap) for n in numbers
    ]

    return ContextWindow(
        index=0,
        text=with_ocr_supplement(
            BLOCK_SEPARATOR.join(blocks),
            ocr_text,
            limits.report_total_cap,
            limits.ocr_supplement_cap,
        ),
        budget_chars=limits.report_total_cap,
        page_numbers=numbers,
        issues=selected,
        rules_summary=rules_summary,
    )


# ----------------------------------------------------------------------
# Semantic
# ----------------------------------------------------------------------


def build_semantic_sample(
    pages: Sequence[Page],
    rules_summary: str,
    limits: ContextLimits,
) -> ContextWindow:
    """
    Single sampled window: leading pages, keyword pages among the first
    pages scanned, then a trailing sample of the whole text.
    """
    chosen: List[Page] = list(pages[: limits.semantic_lead_pages])
    chosen_numbers = {p.number for p in chosen}

    for page in pages[: limits.semantic_keyword_scan_pages]:
        if page.number in chosen_numbers:
            continue
        if any(k and k in page.text for k in limits.semantic_keywords):
            chosen.append(page)
            chosen_numbers.add(page.number)

    blocks = [page_block(p.number, p.text, limits.semantic_page_cap) for p in chosen]

    if limits.semantic_tail_chars > 0:
        full_text = "\n".join(p.text for p in pages)
        tail = tail_sample(full_text, limits.semantic_tail_chars)
        if tail:
            blocks.append(f"{TAIL_MARKER}\n{tail}")

    return ContextWindow(
        index=0,
        text=join_blocks(blocks, limits.semantic_total_cap),
        budget_chars=limits.semantic_total_cap,
        page_numbers=[p.number for p in chosen],
        rules_summary=rules_summary,
    )


def build_semantic_batches(
    pages: Sequence[Page],
    rules_summary: str,
    limits: ContextLimits,
) -> List[ContextWindow]:
    """Partition all pages in order into chunks, one window per chunk."""
    windows: List[ContextWindow] = []
    size = limits.batch_page_size
    total_cap = limits.semantic_total_cap

    for start in range(0, len(pages), size):
        chunk = pages[start : start + size]
        # every page in the chunk gets a share of the window budget
        separators = len(BLOCK_SEPARATOR) * (len(chunk) - 1)
        share = max(1, (total_cap - separators) // len(chunk))
        per_page = min(limits.semantic_page_cap, share)

        blocks = [page_block(p.number, p.text, per_page) for p in chunk]
        windows.append(
            ContextWindow(
                index=len(windows),
                text=join_blocks(blocks, total_cap),
                budget_chars=total_cap,
                page_numbers=[p.number for p in chunk],
                rules_summary=rules_summary,
            )
        )

    return windows


def with_ocr_supplement(
    body: str,
    ocr_text: Optional[str],
    cap: int,
    supplement_cap: int,
) -> str:
    """
    Append recognized image text to a single-window body.

    The supplement is capped first and the body gives up room for it, so
    OCR text survives a long document while the total stays within `cap`.
    """
    if not ocr_text or not ocr_text.strip():
        return truncate_chars(body, cap)

    block = truncate_chars(
        f"{OCR_MARKER}\n{ocr_text.strip()}", min(supplement_cap, cap)
    )
    room = cap - len(block) - len(BLOCK_SEPARATOR)
    return join_blocks([truncate_chars(body, room), block], cap)


def _ocr_window(index: int, ocr_text: str, rules_summary: str, cap: int) -> ContextWindow:
    return ContextWindow(
        index=index,
        text=truncate_chars(f"{OCR_MARKER}\n{ocr_text.strip()}", cap),
        budget_chars=cap,
        rules_summary=rules_summary,
        supplement=True,
    )


# ----------------------------------------------------------------------
# Legacy
# ----------------------------------------------------------------------


def build_legacy_window(
    pages: Sequence[Page],
    rules_summary: str,
    limits: ContextLimits,
    *,
    ocr_text: Optional[str] = None,
) -> ContextWindow:
    text = "\n".join(p.text for p in pages)
    return ContextWindow(
        index=0,
        text=with_ocr_supplement(
            text,
            ocr_text,
            limits.legacy_total_cap,
            limits.ocr_supplement_cap,
        ),
        budget_chars=limits.legacy_total_cap,
        page_numbers=[p.number for p in pages],
        rules_summary=rules_summary,
    )


def _index_pages(pages: Sequence[Page]) -> Dict[int, Page]:
    out: Dict[int, Page] = {}
    for page in pages:
        out.setdefault(page.number, page)
    return out
