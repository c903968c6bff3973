"""
Rule-definitions store.

Rule definitions are an externally maintained, versioned JSON document.
They are parsed once per run; the reviewer digest derived from them is
computed once per run and reused for every reviewer call.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from compliance_review.app.context.truncation import truncate_chars
from compliance_review.app.errors import RuleLoadError
from compliance_review.app.schemas.rules import ForbiddenPatternsCheck, RuleSet

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_CAP = 800


class RuleStore:
    """File-backed rule-definitions store."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RuleSet:
        """
        Read and validate the rule-definitions document.

        Raises:
            RuleLoadError: file missing/unreadable, invalid JSON or
                schema violation. Fatal to the audit.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RuleLoadError(
                f"Cannot read rule definitions at {self._path}: {exc}"
            ) from exc

        try:
            ruleset = RuleSet.model_validate_json(raw)
        except ValidationError as exc:
            raise RuleLoadError(
                f"Invalid rule definitions at {self._path}: "
                f"{exc.error_count()} error(s)"
            ) from exc

        skipped = sum(
            len(check.invalid_patterns)
            for rule in ruleset.rules
            for check in rule.checks
            if isinstance(check, ForbiddenPatternsCheck)
        )

        logger.info(
            "Loaded rule set version=%s rules=%d skipped_patterns=%d",
            ruleset.version,
            len(ruleset.rules),
            skipped,
        )

        return ruleset


def summarize_rules(ruleset: RuleSet, cap: int = DEFAULT_SUMMARY_CAP) -> str:
    """
    Build the compact rules digest handed to the reviewer.

    One line per rule: `[id] (severity) title: instruction`.
    """
    lines = []
    for rule in ruleset.rules:
        line = f"[{rule.id}] ({rule.severity.value}) {rule.title}"
        if rule.instruction:
            line += f": {rule.instruction}"
        lines.append(line)

    return truncate_chars("\n".join(lines), cap)
