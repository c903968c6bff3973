"""
Runtime configuration for the compliance review service.

Settings are parsed once from the environment (prefix `COMPLIANCE_`,
optional `.env` file), validated up front and immutable afterwards.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from compliance_review.app.context.builders import (
    DEFAULT_SEMANTIC_KEYWORDS,
    ContextLimits,
)
from compliance_review.app.context.legal_refs import DEFAULT_FALLBACK_IDS
from compliance_review.app.reviewer.batch import MAX_CONCURRENCY_CEILING
from compliance_review.app.schemas.report import ReviewModeName

PositiveCap = Annotated[int, Field(ge=1)]


class ReviewSettings(BaseSettings):
    """
    Application settings.

    Fails fast at startup when caps are non-positive or inconsistent.
    """

    # ---------------------------------------------------------------------
    # Review behaviour
    # ---------------------------------------------------------------------

    mode: ReviewModeName = Field(
        ReviewModeName.REPORT,
        description="Default review mode when a request does not name one",
    )

    per_page_char_cap: PositiveCap = Field(
        800,
        description="Per-page excerpt cap for report-mode context",
    )

    total_char_cap: PositiveCap = Field(
        6000,
        description="Total context cap for report-mode context",
    )

    report_issue_limit: PositiveCap = Field(
        5,
        description="Rule issues sent to the reviewer in report mode",
    )

    semantic_page_char_cap: PositiveCap = 900
    semantic_total_char_cap: PositiveCap = 9000
    semantic_lead_pages: Annotated[int, Field(ge=0)] = 6
    semantic_keyword_scan_pages: Annotated[int, Field(ge=0)] = 60
    semantic_tail_chars: Annotated[int, Field(ge=0)] = 8000
    semantic_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SEMANTIC_KEYWORDS),
    )

    semantic_batched: bool = Field(
        True,
        description="Review every page in chunks instead of a single sample",
    )

    batch_page_size: PositiveCap = 15
    rules_summary_cap: Annotated[int, Field(ge=0)] = 800

    # ---------------------------------------------------------------------
    # Reviewer transport
    # ---------------------------------------------------------------------

    reviewer_endpoint: str = "https://api.deepseek.com/chat/completions"
    reviewer_model: str = "deepseek-chat"
    reviewer_api_key: Optional[SecretStr] = Field(
        None,
        description="Bearer token for the reviewer endpoint, redacted from logs",
    )
    reviewer_temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.1

    call_timeout_ms: PositiveCap = 110_000
    chunk_timeout_ms: PositiveCap = 60_000
    explain_timeout_ms: PositiveCap = 55_000

    max_concurrent_calls: Annotated[
        int, Field(ge=1, le=MAX_CONCURRENCY_CEILING)
    ] = 2

    reviewer_max_attempts: Annotated[
        int,
        Field(ge=1, le=5, description="1 disables caller-side retries"),
    ] = 1

    # ---------------------------------------------------------------------
    # External documents
    # ---------------------------------------------------------------------

    rules_path: Path = Path("rules/rules.json")
    legal_kb_path: Optional[Path] = Path("legal/legal_kb.json")
    legal_refs_top_n: PositiveCap = 12
    legal_fallback_ids: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_IDS),
    )

    # ---------------------------------------------------------------------
    # Operational boundaries
    # ---------------------------------------------------------------------

    max_upload_size_mb: Annotated[int, Field(ge=1, le=50)] = 10
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="COMPLIANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # ---------------------------------------------------------------------
    # Validators
    # ---------------------------------------------------------------------

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.upper()
        if level not in allowed:
            raise ValueError(
                f"Unsupported log_level '{v}'. Allowed values: {sorted(allowed)}"
            )
        return level

    @model_validator(mode="after")
    def page_caps_within_totals(self) -> "ReviewSettings":
        if self.per_page_char_cap > self.total_char_cap:
            raise ValueError(
                "per_page_char_cap cannot exceed total_char_cap"
            )
        if self.semantic_page_char_cap > self.semantic_total_char_cap:
            raise ValueError(
                "semantic_page_char_cap cannot exceed semantic_total_char_cap"
            )
        return self

    # ---------------------------------------------------------------------
    # Derived views
    # ---------------------------------------------------------------------

    def context_limits(self) -> ContextLimits:
        return ContextLimits(
            report_issue_limit=self.report_issue_limit,
            report_page_cap=self.per_page_char_cap,
            report_total_cap=self.total_char_cap,
            semantic_lead_pages=self.semantic_lead_pages,
            semantic_keyword_scan_pages=self.semantic_keyword_scan_pages,
            semantic_page_cap=self.semantic_page_char_cap,
            semantic_tail_chars=self.semantic_tail_chars,
            semantic_total_cap=self.semantic_total_char_cap,
            semantic_keywords=tuple(self.semantic_keywords),
            semantic_batched=self.semantic_batched,
            batch_page_size=self.batch_page_size,
            legacy_total_cap=self.semantic_total_char_cap,
            rules_summary_cap=self.rules_summary_cap,
        )

    @property
    def api_key(self) -> str:
        return self.reviewer_api_key.get_secret_value() if self.reviewer_api_key else ""

    @property
    def timeouts_s(self) -> Tuple[float, float, float]:
        """(call, chunk, explain) timeouts in seconds."""
        return (
            self.call_timeout_ms / 1000,
            self.chunk_timeout_ms / 1000,
            self.explain_timeout_ms / 1000,
        )


@lru_cache(maxsize=1)
def get_settings() -> ReviewSettings:
    """Process-wide settings singleton."""
    return ReviewSettings()
