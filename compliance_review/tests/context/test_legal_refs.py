from __future__ import annotations

import logging

from compliance_review.app.context.legal_refs import (
    LegalRef,
    load_legal_kb,
    score_ref,
    select_legal_refs,
)
from compliance_review.app.schemas.report import Scene
from compliance_review.tests.helpers import SAMPLE_LEGAL_KB


def _ids(refs):
    return [r.id for r in refs]


def test_sample_knowledge_base_loads():
    items = load_legal_kb(SAMPLE_LEGAL_KB)

    assert "R-02" in _ids(items)


def test_missing_knowledge_base_degrades_to_empty(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        assert load_legal_kb(tmp_path / "absent.json") == []
    assert "Legal knowledge base unavailable" in caplog.text

    broken = tmp_path / "kb.json"
    broken.write_text("[1, 2", encoding="utf-8")
    assert load_legal_kb(broken) == []

    assert load_legal_kb(None) == []


def test_scene_scope_and_exclusion():
    scoped = LegalRef(id="a", scope=["internet_publish"])
    excluded = LegalRef(id="b", exclude_scope=["internal_training"])
    open_ref = LegalRef(id="c")

    assert scoped.applies_to(Scene.INTERNET_PUBLISH)
    assert not scoped.applies_to(Scene.INTERNAL_TRAINING)
    assert not excluded.applies_to(Scene.INTERNAL_TRAINING)
    assert excluded.applies_to(Scene.OFFLINE_MARKETING)
    assert open_ref.applies_to(Scene.INTERNAL_TRAINING)


def test_keyword_and_title_hits_are_scored():
    ref = LegalRef(id="x", title="保本承诺", keywords=["保本", "收益"])

    # two keyword hits, title hit, leading-keyword bonus
    assert score_ref("本产品保本承诺，收益稳定", ref) == 3 + 3 + 2 + 1
    assert score_ref("无关内容", ref) == 0


def test_selection_ranks_hits_and_filters_scene():
    items = load_legal_kb(SAMPLE_LEGAL_KB)

    refs = select_legal_refs(
        items,
        Scene.INTERNAL_TRAINING,
        "本产品保本稳赚，可替代存款，限时抢购",
    )

    # R-11 matches "限时" but is excluded for internal training
    assert _ids(refs) == ["R-02", "R-03"]


def test_selection_respects_top_n():
    items = load_legal_kb(SAMPLE_LEGAL_KB)

    refs = select_legal_refs(
        items,
        Scene.INTERNET_PUBLISH,
        "保本稳赚 存款 限时 风险提示 最好",
        top_n=2,
    )

    assert len(refs) == 2
    assert refs[0].id == "R-02"


def test_no_hits_fall_back_to_applicable_defaults():
    items = load_legal_kb(SAMPLE_LEGAL_KB)

    refs = select_legal_refs(items, Scene.INTERNAL_TRAINING, "平平无奇的文字")

    assert _ids(refs) == ["R-01", "R-02", "R-03"]
