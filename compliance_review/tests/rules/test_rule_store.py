from __future__ import annotations

import json

import pytest

from compliance_review.app.errors import RuleLoadError
from compliance_review.app.rules.store import RuleStore, summarize_rules
from compliance_review.app.schemas.rules import (
    CheckScope,
    ForbiddenTermsCheck,
    MustHaveAnyCheck,
)
from compliance_review.tests.helpers import SAMPLE_RULES, forbidden_rule, make_ruleset


def test_sample_rule_definitions_load():
    ruleset = RuleStore(SAMPLE_RULES).load()

    assert ruleset.version
    rule = ruleset.get("6-07")
    assert rule is not None
    assert isinstance(rule.checks[0], ForbiddenTermsCheck)

    disclosure = ruleset.get("7-03").checks[0]
    assert isinstance(disclosure, MustHaveAnyCheck)
    assert disclosure.scope == CheckScope.GLOBAL


def test_missing_file_is_fatal(tmp_path):
    with pytest.raises(RuleLoadError):
        RuleStore(tmp_path / "absent.json").load()


def test_invalid_json_is_fatal(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(RuleLoadError):
        RuleStore(path).load()


def test_duplicate_rule_ids_are_fatal(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            {
                "version": "1",
                "rules": [forbidden_rule("a", "x"), forbidden_rule("a", "y")],
            }
        ),
        encoding="utf-8",
    )

    with pytest.raises(RuleLoadError):
        RuleStore(path).load()


def test_unknown_check_type_is_fatal(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            {
                "version": "1",
                "rules": [
                    {
                        "id": "a",
                        "severity": "low",
                        "title": "t",
                        "auto_checks": [{"type": "sentiment", "terms": ["x"]}],
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    with pytest.raises(RuleLoadError):
        RuleStore(path).load()


def test_rules_summary_lists_rules_and_respects_cap():
    rule = forbidden_rule("6-07", "保本")
    rule["instruction"] = "不得承诺保本"
    ruleset = make_ruleset(rule, forbidden_rule("6-01", "第一", severity="medium"))

    summary = summarize_rules(ruleset)

    assert summary.splitlines() == [
        "[6-07] (high) Rule 6-07: 不得承诺保本",
        "[6-01] (medium) Rule 6-01",
    ]
    assert len(summarize_rules(ruleset, cap=10)) == 10
    assert summarize_rules(ruleset, cap=0) == ""


def test_rules_serialize_with_wire_key():
    ruleset = make_ruleset(forbidden_rule("6-07", "保本"))

    dumped = ruleset.model_dump(mode="json", by_alias=True)

    assert "auto_checks" in dumped["rules"][0]
