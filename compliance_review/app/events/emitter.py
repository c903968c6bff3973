from __future__ import annotations

from typing import Protocol

from compliance_review.app.events.models import AuditEvent


class AuditEventEmitter(Protocol):
    """
    Sink for review progress events.

    An emitter observes a run; it never steers it. Implementations
    return quickly and swallow their own delivery problems, so a slow
    or vanished consumer cannot stall or fail a review.
    """

    async def emit(self, event: AuditEvent) -> None:
        ...


class NullEventEmitter:
    """Discards every event (plain JSON endpoints, most tests)."""

    async def emit(self, event: AuditEvent) -> None:
        return None
