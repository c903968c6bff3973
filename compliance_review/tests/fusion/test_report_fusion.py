"""
Report fusion.

Verifies that:
- every rule issue is covered by a fix, with or without reviewer output
- duplicate fixes are merged and deduplication is idempotent
- fixes follow issue order
- legacy-shaped reviewer answers are mapped onto issues
"""

from __future__ import annotations

from compliance_review.app.fusion.dedup import dedupe_fixes, merge_fixes
from compliance_review.app.fusion.digest import build_digest
from compliance_review.app.fusion.report import fuse_report, synthesize_summary
from compliance_review.app.rules.engine import evaluate
from compliance_review.app.schemas.payloads import ReportPayload
from compliance_review.app.schemas.report import Fix, ReviewError, Rewrite
from compliance_review.app.schemas.rules import Severity
from compliance_review.tests.helpers import (
    forbidden_rule,
    global_disclosure_rule,
    make_pages,
    make_ruleset,
)

TIMEOUT = ReviewError(kind="network_or_timeout", message="Reviewer call timed out after 110s")


def _audit():
    ruleset = make_ruleset(
        forbidden_rule("6-07", "保本"),
        forbidden_rule("6-01", "第一", severity="medium"),
        global_disclosure_rule("7-03", "风险提示"),
    )
    pages = make_pages("行业第一", "本产品保本", "投保须知")
    return evaluate(pages, ruleset)


def _fix(rule_id, page, quote, after, before=None):
    return Fix(
        rule_id=rule_id,
        page=page,
        quotes=[quote] if quote else [],
        rewrites=[Rewrite(action="replace", before=before or quote or "x", after=after)],
    )


def test_reviewer_timeout_yields_one_fix_per_issue():
    audit = _audit()
    assert len(audit.issues) == 3

    report = fuse_report(audit, None, errors=[TIMEOUT])

    assert len(report.fixes) == len(audit.issues)
    assert all(f.synthesized for f in report.fixes)
    assert report.reviewer_used is False
    assert report.partial is True
    assert report.errors[0].kind == "network_or_timeout"
    assert report.summary.overall


def test_issues_sharing_a_quote_each_keep_their_own_fix():
    rule = {
        "id": "6-07",
        "severity": "high",
        "title": "保本承诺",
        "auto_checks": [
            {"type": "forbidden_terms", "terms": ["保本"]},
            {"type": "forbidden_patterns", "patterns": ["保本"]},
        ],
    }
    audit = evaluate(make_pages("本产品保本"), make_ruleset(rule))
    assert len(audit.issues) == 2

    report = fuse_report(audit, None, errors=[TIMEOUT])

    assert len(report.fixes) == 2
    assert [f.quotes for f in report.fixes] == [["保本"], ["保本"]]


def test_synthesized_fix_is_built_from_the_issue():
    audit = _audit()

    report = fuse_report(audit, None)
    by_rule = {f.rule_id: f for f in report.fixes}

    forbidden = by_rule["6-07"]
    assert forbidden.page == 2
    assert forbidden.quotes == ["保本"]
    assert forbidden.rewrites[0].action == "replace"
    assert forbidden.rewrites[0].before == "保本"

    absence = by_rule["7-03"]
    assert absence.page == 1
    assert absence.quotes == []
    assert absence.rewrites[0].action == "add"
    assert absence.rewrites[0].before == absence.problem


def test_reviewer_fixes_are_kept_and_gaps_are_synthesized():
    audit = _audit()
    payload = ReportPayload.model_validate(
        {
            "rules_issues_fix": [
                {
                    "rule_id": "6-07",
                    "page": 2,
                    "quote": "保本",
                    "problem": "承诺保本",
                    "rewrite": [{"action": "replace", "after": "收益存在不确定性"}],
                },
                # no usable rewrite: dropped, then covered by synthesis
                {"rule_id": "6-01", "page": 1, "quotes": ["第一"], "rewrites": []},
            ]
        }
    )

    report = fuse_report(audit, payload)

    assert report.reviewer_used is True
    assert report.partial is False
    assert {f.coverage_key for f in report.fixes} == {i.coverage_key for i in audit.issues}

    reviewer_fix = next(f for f in report.fixes if f.rule_id == "6-07")
    assert reviewer_fix.synthesized is False
    assert reviewer_fix.rewrites[0].before == "保本"
    assert reviewer_fix.rewrites[0].after == "收益存在不确定性"

    assert next(f for f in report.fixes if f.rule_id == "6-01").synthesized is True


def test_fixes_follow_issue_order():
    audit = _audit()
    payload = ReportPayload.model_validate(
        {
            "rules_issues_fix": [
                {"rule_id": "9-99", "page": 3, "quote": "须知", "rewrite": [{"after": "y"}]},
                {"rule_id": "6-07", "page": 2, "quote": "保本", "rewrite": [{"after": "z"}]},
            ]
        }
    )

    report = fuse_report(audit, payload)

    expected = [i.coverage_key for i in audit.issues] + [("9-99", 3)]
    assert [f.coverage_key for f in report.fixes] == expected


def test_duplicate_fixes_merge_longer_rewrite_wins():
    short = _fix("6-07", 2, "保本", "删除")
    long = _fix("6-07", 2, "保本", "改为：收益不确定")

    merged = merge_fixes(short, long)

    assert merged.rewrites[0].after == "改为：收益不确定"
    assert [r.after for r in merged.rewrites] == ["改为：收益不确定", "删除"]

    deduped = dedupe_fixes([short, long, _fix("6-07", 3, "保本", "删除")])
    assert len(deduped) == 2
    assert dedupe_fixes(deduped) == deduped


def test_absence_fixes_on_same_page_deduplicate_by_before_text():
    a = _fix("7-03", 1, "", "补充风险提示", before="缺少风险提示")
    b = _fix("7-03", 1, "", "在首页补充风险提示语", before="缺少风险提示")

    assert len(dedupe_fixes([a, b])) == 1


def test_legacy_shaped_answer_is_mapped_onto_issues():
    audit = _audit()
    payload = ReportPayload.model_validate(
        {
            "ai": [
                {
                    "rule_id": "6-07",
                    "verdict": "fail",
                    "problem": "保本承诺",
                    "rewrite_suggestion": [{"before": "保本", "after": "不保证本金"}],
                },
                {"rule_id": "6-07", "verdict": "pass"},
            ]
        }
    )

    report = fuse_report(audit, payload)
    fix = next(f for f in report.fixes if f.rule_id == "6-07")

    assert fix.synthesized is False
    assert fix.problem == "保本承诺"
    assert fix.rewrites[0].after == "不保证本金"
    assert len(report.fixes) == len(audit.issues)


def test_extra_findings_keep_only_high_must_fix():
    audit = _audit()
    payload = ReportPayload.model_validate(
        {
            "ai_extra": [
                {"severity": "high", "must_fix": True, "page": 1, "problem": "暗示零风险"},
                {"severity": "medium", "must_fix": True, "problem": "语气夸张"},
                {"severity": "high", "must_fix": False, "problem": "建议优化"},
                {"severity": "HIGH", "must_fix": "true", "page": 1, "problem": "暗示零风险 "},
            ]
        }
    )

    report = fuse_report(audit, payload)

    assert [f.problem for f in report.extra_findings] == ["暗示零风险"]


def test_reviewer_summary_is_preferred_over_synthesis():
    audit = _audit()
    payload = ReportPayload.model_validate(
        {"final_summary": {"overall": "整体风险较高", "top_risks": ["a", "b", "c", "d"]}}
    )

    report = fuse_report(audit, payload)

    assert report.summary.overall == "整体风险较高"
    assert report.summary.top_risks == ["a", "b", "c"]


def test_clean_audit_summary():
    audit = evaluate(make_pages("合规内容"), make_ruleset(forbidden_rule("6-07", "保本")))

    report = fuse_report(audit, None)

    assert report.fixes == []
    assert report.summary == synthesize_summary(audit)
    assert report.summary.top_risks == []


def test_digest_groups_hits_by_rule():
    audit = _audit()

    digest = build_digest(audit)

    assert digest.rule_result == "fail"
    assert digest.top_hits[0].severity == Severity.HIGH
    assert sorted(digest.hits_by_rule) == ["6-01", "6-07", "7-03"]
    assert build_digest(audit, top_n=1).top_hits == digest.top_hits[:1]
