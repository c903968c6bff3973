"""
Context construction.

Verifies that:
- truncation never exceeds its cap and never splits a character
- report context pre-deduplicates issues and bounds page excerpts
- semantic batching partitions every page in order
- the sampled semantic window picks leading, keyword and tail text
"""

from __future__ import annotations

from compliance_review.app.context.builders import (
    ContextLimits,
    build_context,
    dedupe_issues,
)
from compliance_review.app.context.truncation import (
    join_blocks,
    page_block,
    tail_sample,
    truncate_bytes,
    truncate_chars,
)
from compliance_review.app.rules.engine import evaluate
from compliance_review.app.schemas.audit import AuditResult, Issue
from compliance_review.app.schemas.report import ReviewModeName
from compliance_review.app.schemas.rules import CheckKind, Severity
from compliance_review.tests.helpers import forbidden_rule, make_pages, make_ruleset


def _empty_audit(pages_count: int = 0) -> AuditResult:
    return AuditResult(
        passed=True,
        risk_level=Severity.LOW,
        rule_version="t",
        pages_count=pages_count,
    )


def _issue(rule_id: str, page: int, hit: str = "x") -> Issue:
    return Issue(
        page=page,
        rule_id=rule_id,
        severity=Severity.HIGH,
        check_kind=CheckKind.FORBIDDEN_TERMS,
        hit_text=hit,
        message=f"msg {hit}",
        suggestion="fix",
    )


# ----------------------------------------------------------------------
# Truncation
# ----------------------------------------------------------------------


def test_truncation_keeps_leading_text_within_cap():
    text = "保险有风险" * 100

    for cap in (0, 1, 7, 499, 500, 501):
        out = truncate_chars(text, cap)
        assert len(out) <= cap
        assert text.startswith(out)


def test_byte_truncation_never_splits_a_character():
    text = "保本abc" * 10

    for cap in range(0, 40):
        out = truncate_bytes(text, cap)
        assert len(out.encode("utf-8")) <= cap
        assert text.startswith(out)


def test_page_block_and_join_respect_caps():
    block = page_block(3, "内容" * 1000, 800)
    assert block.startswith("【第3页】")
    assert len(block) == 800

    joined = join_blocks([block, "", block], 1000)
    assert len(joined) == 1000


def test_tail_sample_keeps_trailing_text():
    assert tail_sample("abcdefghijklmnopqrstuvwxyz", 4) == "wxyz"
    assert tail_sample("abc", 10) == "abc"
    assert tail_sample("abc", 0) == ""


# ----------------------------------------------------------------------
# Report
# ----------------------------------------------------------------------


def test_dedupe_issues_drops_exact_repeats_only():
    issues = [_issue("a", 1), _issue("a", 1), _issue("a", 1, "y"), _issue("a", 2)]

    assert dedupe_issues(issues) == [issues[0], issues[2], issues[3]]


def test_report_window_limits_issues_and_caps_pages():
    pages = make_pages(*[("保本" + "字" * 2000) for _ in range(8)])
    audit = evaluate(pages, make_ruleset(forbidden_rule("6-07", "保本")))

    limits = ContextLimits()
    [window] = build_context(ReviewModeName.REPORT, pages, audit, "digest", limits)

    assert len(window.issues) == 5
    assert window.page_numbers == [1, 2, 3, 4, 5]
    assert len(window.text) <= limits.report_total_cap
    assert window.text.count("【第") == 5
    assert window.rules_summary == "digest"


def test_report_window_appends_ocr_text_within_cap():
    pages = make_pages(*[("保本" + "字" * 2000) for _ in range(8)])
    audit = evaluate(pages, make_ruleset(forbidden_rule("6-07", "保本")))
    limits = ContextLimits(report_total_cap=2000, ocr_supplement_cap=300)

    [window] = build_context(
        ReviewModeName.REPORT,
        pages,
        audit,
        "",
        limits,
        ocr_text="图片：保证收益\n",
    )

    assert len(window.text) == 2000
    assert window.text.startswith("【第1页】")
    assert window.text.endswith("【OCR补充】\n图片：保证收益")
    assert window.supplement is False


def test_report_window_lists_each_page_once():
    pages = make_pages("保本 稳赚", "其他")
    audit = evaluate(pages, make_ruleset(forbidden_rule("6-07", "保本", "稳赚")))

    [window] = build_context(ReviewModeName.REPORT, pages, audit, "")

    assert len(window.issues) == 2
    assert window.page_numbers == [1]


def test_rules_summary_is_capped_once_for_all_windows():
    pages = make_pages(*["正文"] * 40)
    limits = ContextLimits(rules_summary_cap=5)

    windows = build_context(
        ReviewModeName.SEMANTIC,
        pages,
        _empty_audit(40),
        "0123456789",
        limits,
    )

    assert {w.rules_summary for w in windows} == {"01234"}


# ----------------------------------------------------------------------
# Semantic
# ----------------------------------------------------------------------


def test_semantic_batches_cover_all_pages_in_order():
    pages = make_pages(*[("页" * 3000) for _ in range(40)])
    limits = ContextLimits()

    windows = build_context(ReviewModeName.SEMANTIC, pages, _empty_audit(40), "", limits)

    assert [len(w.page_numbers) for w in windows] == [15, 15, 10]
    assert [n for w in windows for n in w.page_numbers] == list(range(1, 41))
    assert [w.index for w in windows] == [0, 1, 2]
    for window in windows:
        assert len(window.text) <= limits.semantic_total_cap
        # every page of the chunk is represented
        assert window.text.count("【第") == len(window.page_numbers)


def test_ocr_text_becomes_final_supplement_window():
    pages = make_pages("a", "b")

    windows = build_context(
        ReviewModeName.SEMANTIC,
        pages,
        _empty_audit(2),
        "",
        ocr_text="图片中的文字",
    )

    assert len(windows) == 2
    assert windows[-1].supplement is True
    assert windows[-1].index == 1
    assert "图片中的文字" in windows[-1].text


def test_semantic_sample_picks_lead_keyword_and_tail_text():
    texts = ["普通内容"] * 70
    texts[19] = "限时优惠，马上购买"
    texts[64] = "稳赚不赔"  # beyond the keyword scan range
    texts[69] = "结尾页"
    pages = make_pages(*texts)
    limits = ContextLimits(semantic_batched=False)

    [window] = build_context(ReviewModeName.SEMANTIC, pages, _empty_audit(70), "", limits)

    assert window.page_numbers == [1, 2, 3, 4, 5, 6, 20]
    assert "【尾部抽样】" in window.text
    assert window.text.endswith("结尾页")
    assert len(window.text) <= limits.semantic_total_cap


def test_legacy_window_is_single_and_capped():
    pages = make_pages(*["字" * 5000] * 3)
    limits = ContextLimits(legacy_total_cap=1000)

    [window] = build_context(ReviewModeName.LEGACY, pages, _empty_audit(3), "", limits)

    assert len(window.text) == 1000
    assert window.budget_chars == 1000


def test_legacy_window_keeps_ocr_text_for_long_documents():
    pages = make_pages(*["字" * 5000] * 3)
    limits = ContextLimits(legacy_total_cap=1000, ocr_supplement_cap=100)

    [window] = build_context(
        ReviewModeName.LEGACY,
        pages,
        _empty_audit(3),
        "",
        limits,
        ocr_text="图" * 500,
    )

    assert len(window.text) == 1000
    assert window.text.startswith("字")
    # marker and newline take 8 of the 100 reserved characters
    assert window.text.endswith("【OCR补充】\n" + "图" * 92)
