"""
Exception hierarchy for the compliance review service.

Only input and rule-definition failures are fatal to an audit. Reviewer
failures are normally carried as typed values (see
`app.reviewer.client.ReviewerCallError`) and only surface as exceptions
for operations that have no degraded fallback (e.g. explain).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from compliance_review.app.reviewer.client import ReviewerCallError


class ComplianceReviewError(Exception):
    """Base class for all service errors."""


class InputError(ComplianceReviewError):
    """
    The submitted document cannot be audited (no pages, no text,
    unsupported file type). Terminal, never retried.
    """


class RuleLoadError(ComplianceReviewError):
    """
    Rule definitions could not be loaded or failed validation.

    No audit can run without rule definitions.
    """


class ReviewerUnavailableError(ComplianceReviewError):
    """Raised where a reviewer call has no rule-only fallback."""

    def __init__(self, error: "ReviewerCallError") -> None:
        super().__init__(f"Reviewer call failed ({error.kind.value}): {error.message}")
        self.error = error
