from __future__ import annotations

import pytest
from pydantic import ValidationError

from compliance_review.app.config import ReviewSettings
from compliance_review.app.schemas.report import ReviewModeName


def test_defaults_match_reviewer_budgets():
    settings = ReviewSettings()

    assert settings.mode == ReviewModeName.REPORT
    assert settings.timeouts_s == (110.0, 60.0, 55.0)
    assert settings.max_concurrent_calls == 2
    assert settings.reviewer_max_attempts == 1

    limits = settings.context_limits()
    assert limits.report_page_cap == 800
    assert limits.report_total_cap == 6000
    assert limits.semantic_total_cap == 9000
    assert limits.batch_page_size == 15


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("COMPLIANCE_MODE", "semantic")
    monkeypatch.setenv("COMPLIANCE_SEMANTIC_BATCHED", "false")
    monkeypatch.setenv("COMPLIANCE_REVIEWER_API_KEY", "sk-test")
    monkeypatch.setenv("COMPLIANCE_LOG_LEVEL", "debug")

    settings = ReviewSettings()

    assert settings.mode == ReviewModeName.SEMANTIC
    assert settings.context_limits().semantic_batched is False
    assert settings.api_key == "sk-test"
    assert "sk-test" not in repr(settings)
    assert settings.log_level == "DEBUG"


def test_unknown_log_level_is_rejected():
    with pytest.raises(ValidationError):
        ReviewSettings(log_level="chatty")


def test_page_cap_may_not_exceed_total():
    with pytest.raises(ValidationError):
        ReviewSettings(per_page_char_cap=7000, total_char_cap=6000)


def test_concurrency_ceiling():
    with pytest.raises(ValidationError):
        ReviewSettings(max_concurrent_calls=8)


def test_settings_are_immutable():
    settings = ReviewSettings()

    with pytest.raises(ValidationError):
        settings.mode = ReviewModeName.LEGACY
