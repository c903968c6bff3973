from __future__ import annotations

import logging
import math
from typing import AsyncIterator

import anyio

from compliance_review.app.events.models import AuditEvent, AuditEventType

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset(
    {
        AuditEventType.REVIEW_COMPLETED,
        AuditEventType.REVIEW_FAILED,
    }
)


class MemoryQueueEventEmitter:
    """
    In-memory event emitter suitable for SSE streaming.

    Properties:
    - single consumer
    - never blocks the review path (unbounded buffer)
    - preserves emission order
    - closes itself after a terminal event
    """

    def __init__(self) -> None:
        self._send, self._receive = anyio.create_memory_object_stream(
            max_buffer_size=math.inf
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: AuditEvent) -> None:
        if self._closed:
            return

        try:
            self._send.send_nowait(event)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            # consumer went away; the review carries on
            logger.debug("Dropping event %s: stream consumer gone", event.event_type.value)
            self._closed = True
            return

        if event.event_type in TERMINAL_EVENTS:
            await self.close()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._send.aclose()

    async def stream(self) -> AsyncIterator[AuditEvent]:
        """Yield emitted events in order until the emitter is closed."""
        async with self._receive:
            async for event in self._receive:
                yield event
