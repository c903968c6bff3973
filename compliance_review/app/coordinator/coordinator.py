"""
Review coordinator.

IMPORTANT:
The coordinator only wires stages together. It MUST NOT:
- inspect or interpret page text
- contain matching, prompt or fusion logic

Its responsibilities are:
- enforcing stage order (rules -> audit -> context -> reviewer -> fusion)
- rejecting unusable input before any work starts
- emitting observational progress events
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

import httpx
from pydantic import BaseModel, ConfigDict

from compliance_review.app.config import ReviewSettings
from compliance_review.app.context.legal_refs import load_legal_kb
from compliance_review.app.errors import InputError, ReviewerUnavailableError
from compliance_review.app.events import (
    AuditEvent,
    AuditEventEmitter,
    AuditEventType,
    NullEventEmitter,
)
from compliance_review.app.fusion.digest import build_digest
from compliance_review.app.modes.assembler import build_review_modes
from compliance_review.app.modes.base import ReviewInput, ReviewMode
from compliance_review.app.modes.prompts import EXPLAIN_SYSTEM, explain_user
from compliance_review.app.reviewer.client import HttpReviewerClient, ReviewerClient
from compliance_review.app.reviewer.retry import with_retries
from compliance_review.app.rules.engine import evaluate
from compliance_review.app.rules.store import RuleStore, summarize_rules
from compliance_review.app.schemas.audit import AuditResult
from compliance_review.app.schemas.document import Page, sort_pages
from compliance_review.app.schemas.payloads import ExplainPayload
from compliance_review.app.schemas.report import (
    AuditDigest,
    Explanation,
    Fix,
    FusedReport,
    ReviewModeName,
    Scene,
)
from compliance_review.app.schemas.rules import RuleSet

logger = logging.getLogger(__name__)

DEFAULT_EXPLAIN_TIMEOUT_S = 55.0


class ReviewOutcome(BaseModel):
    """Audit plus fused report of one end-to-end run."""

    audit: AuditResult
    report: FusedReport
    digest: AuditDigest

    model_config = ConfigDict(frozen=True, extra="forbid")


def require_pages(pages: Sequence[Page]) -> List[Page]:
    """Reject empty input; return pages in page-number order."""
    if not pages:
        raise InputError("No pages to review")
    if not any(p.text.strip() for p in pages):
        raise InputError("Every page is empty; nothing to review")
    return sort_pages(list(pages))


class ComplianceCoordinator:
    """
    Central review coordinator.

    Execution order:
        1. Load rule definitions (fatal on failure)
        2. Rule audit (deterministic)
        3. Mode-specific review (reviewer calls + fusion, degradable)
    """

    def __init__(
        self,
        *,
        rule_store: RuleStore,
        client: ReviewerClient,
        modes: Dict[ReviewModeName, ReviewMode],
        rules_summary_cap: int = 800,
        explain_timeout_s: float = DEFAULT_EXPLAIN_TIMEOUT_S,
    ) -> None:
        """
        Direct constructor.

        Intended for tests and explicit wiring.
        """
        self._rule_store = rule_store
        self._client = client
        self._modes = modes
        self._rules_summary_cap = rules_summary_cap
        self._explain_timeout_s = explain_timeout_s

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: ReviewSettings,
        *,
        client: Optional[ReviewerClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "ComplianceCoordinator":
        if client is None:
            client = HttpReviewerClient(
                endpoint=settings.reviewer_endpoint,
                model=settings.reviewer_model,
                api_key=settings.api_key,
                temperature=settings.reviewer_temperature,
                http_client=http_client,
            )
        client = with_retries(client, settings.reviewer_max_attempts)

        _, _, explain_timeout_s = settings.timeouts_s

        return cls(
            rule_store=RuleStore(settings.rules_path),
            client=client,
            modes=build_review_modes(
                client=client,
                settings=settings,
                legal_kb=load_legal_kb(settings.legal_kb_path),
            ),
            rules_summary_cap=settings.rules_summary_cap,
            explain_timeout_s=explain_timeout_s,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_rules(self) -> RuleSet:
        return self._rule_store.load()

    async def aclose(self) -> None:
        """Release the reviewer client (its HTTP connection pool)."""
        await self._client.aclose()

    def rules_summary(self, ruleset: RuleSet) -> str:
        return summarize_rules(ruleset, self._rules_summary_cap)

    def audit(self, pages: Sequence[Page], ruleset: RuleSet) -> AuditResult:
        """Run the rule engine over validated pages."""
        return evaluate(require_pages(pages), ruleset)

    async def review(
        self,
        mode: ReviewModeName,
        pages: Sequence[Page],
        audit: AuditResult,
        rules_summary: str,
        *,
        scene: Scene = Scene.INTERNAL_TRAINING,
        ocr_text: Optional[str] = None,
        audit_id: Optional[str] = None,
        emitter: Optional[AuditEventEmitter] = None,
    ) -> FusedReport:
        """
        Review an existing audit in the given mode.

        Reviewer failures never raise here; they degrade the report.
        """
        emitter = emitter or NullEventEmitter()
        request = ReviewInput(
            pages=require_pages(pages),
            audit=audit,
            rules_summary=rules_summary,
            scene=scene,
            ocr_text=ocr_text,
            audit_id=audit_id or str(uuid4()),
        )

        report = await self._modes[mode].review(request, emitter)

        await emitter.emit(
            AuditEvent(
                audit_id=request.audit_id,
                event_type=AuditEventType.FUSION_COMPLETED,
                details={
                    "mode": mode.value,
                    "fixes": len(report.fixes),
                    "extra_findings": len(report.extra_findings),
                    "verdicts": len(report.verdicts),
                    "partial": report.partial,
                },
            )
        )

        logger.info(
            "Review finished mode=%s fixes=%d findings=%d partial=%s",
            mode.value,
            len(report.fixes),
            len(report.extra_findings),
            report.partial,
        )
        return report

    async def run(
        self,
        pages: Sequence[Page],
        mode: ReviewModeName,
        *,
        scene: Scene = Scene.INTERNAL_TRAINING,
        ocr_text: Optional[str] = None,
        audit_id: Optional[str] = None,
        emitter: Optional[AuditEventEmitter] = None,
    ) -> ReviewOutcome:
        """Load rules, audit and review in one pass."""
        emitter = emitter or NullEventEmitter()
        audit_id = audit_id or str(uuid4())

        await emitter.emit(
            AuditEvent(
                audit_id=audit_id,
                event_type=AuditEventType.REVIEW_STARTED,
                details={"mode": mode.value, "pages": len(pages)},
            )
        )

        try:
            ruleset = self.load_rules()

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.RULES_LOADED,
                    details={
                        "version": ruleset.version,
                        "rules": len(ruleset.rules),
                    },
                )
            )

            audit = self.audit(pages, ruleset)

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.RULE_AUDIT_COMPLETED,
                    details={
                        "pass": audit.passed,
                        "risk_level": audit.risk_level.value,
                        "issues": len(audit.issues),
                    },
                )
            )

            report = await self.review(
                mode,
                pages,
                audit,
                self.rules_summary(ruleset),
                scene=scene,
                ocr_text=ocr_text,
                audit_id=audit_id,
                emitter=emitter,
            )

            outcome = ReviewOutcome(
                audit=audit,
                report=report,
                digest=build_digest(audit),
            )

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.REVIEW_COMPLETED,
                    details={"outcome": outcome.model_dump(mode="json", by_alias=True)},
                )
            )

            return outcome

        except Exception as exc:
            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.REVIEW_FAILED,
                    details={
                        "error": str(exc),
                        "exception_type": type(exc).__name__,
                    },
                )
            )
            raise

    async def explain(self, item: Fix) -> Explanation:
        """
        Ask the reviewer to explain one fix.

        Raises:
            ReviewerUnavailableError: the reviewer call failed.
        """
        result = await self._client.call(
            EXPLAIN_SYSTEM,
            explain_user(item),
            timeout_s=self._explain_timeout_s,
            schema=ExplainPayload,
        )

        if not result.success:
            raise ReviewerUnavailableError(result.error)

        payload: ExplainPayload = result.payload
        return Explanation(
            rule_id=payload.rule_id.strip() or item.rule_id,
            title=payload.title.strip(),
            why_risky=payload.why_risky,
            what_triggered=payload.what_triggered,
            how_to_fix=payload.how_to_fix,
            better_wording=payload.better_wording,
            notes=payload.notes.strip(),
        )
