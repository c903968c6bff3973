from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Event Types
# ----------------------------------------------------------------------
class AuditEventType(str, Enum):
    """
    Progress events emitted while auditing and reviewing a document.

    NOTE:
    Events are observational. New entries must not carry results that
    are unavailable from the final report.
    """

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------
    REVIEW_STARTED = "review_started"
    REVIEW_COMPLETED = "review_completed"
    REVIEW_FAILED = "review_failed"

    # ------------------------------------------------------------------
    # Rule engine
    # ------------------------------------------------------------------
    RULES_LOADED = "rules_loaded"
    RULE_AUDIT_COMPLETED = "rule_audit_completed"

    # ------------------------------------------------------------------
    # Reviewer orchestration
    # ------------------------------------------------------------------
    CONTEXT_BUILT = "context_built"
    REVIEWER_CALL_STARTED = "reviewer_call_started"
    REVIEWER_CALL_COMPLETED = "reviewer_call_completed"

    # ------------------------------------------------------------------
    # Fusion
    # ------------------------------------------------------------------
    FUSION_COMPLETED = "fusion_completed"


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class AuditEvent(BaseModel):
    """
    An immutable observation of a phase transition.

    Events are:
    - strictly observational
    - transport-agnostic
    - never authoritative
    """

    event_id: UUID = Field(default_factory=uuid4)
    audit_id: str = Field(..., description="Request-scoped identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: AuditEventType

    # Optional contextual metadata (mode, chunk index, counts, ...)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def to_sse_payload(self) -> str:
        """Render as one Server-Sent Events frame."""
        data = json.dumps(self.model_dump(mode="json"), ensure_ascii=False)
        return f"event: {self.event_type.value}\ndata: {data}\n\n"
