"""
Bounded-concurrency batch execution of reviewer calls.

IMPORTANT:
- One reviewer call per request, each with its own timeout scope.
- A failed call never cancels its siblings; successful chunks are
  always retained.
- Workers only send outcomes; a single coordinating routine owns the
  accumulator. The merged result is in chunk order regardless of
  completion order.
- Cancelling the caller cancels every in-flight call.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Type

import anyio
from anyio.abc import ObjectSendStream
from pydantic import BaseModel, ConfigDict, Field

from compliance_review.app.events import (
    AuditEvent,
    AuditEventEmitter,
    AuditEventType,
    NullEventEmitter,
)
from compliance_review.app.reviewer.client import ReviewerCallResult, ReviewerClient
from compliance_review.app.schemas.report import ReviewError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 2
MAX_CONCURRENCY_CEILING = 4


class ReviewRequest(BaseModel):
    index: int = Field(..., ge=0)
    system: str
    user: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class ChunkOutcome(BaseModel):
    index: int
    result: ReviewerCallResult

    model_config = ConfigDict(frozen=True, extra="forbid")


class BatchOutcome(BaseModel):
    """Merged outcome of a batch, in chunk order."""

    outcomes: List[ChunkOutcome] = Field(default_factory=list)
    partial: bool = False
    errors: List[ReviewError] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def payloads(self) -> List[BaseModel]:
        return [o.result.payload for o in self.outcomes if o.result.success]

    @property
    def any_success(self) -> bool:
        return any(o.result.success for o in self.outcomes)


class _BatchAccumulator:
    """Collects outcomes in completion order; merges them in chunk order."""

    def __init__(self, expected: int) -> None:
        self._expected = expected
        self._received: Dict[int, ChunkOutcome] = {}

    def add(self, outcome: ChunkOutcome) -> None:
        self._received[outcome.index] = outcome

    def merge(self) -> BatchOutcome:
        ordered = [self._received[i] for i in sorted(self._received)]
        errors = [
            o.result.error.to_review_error(chunk_index=o.index)
            for o in ordered
            if o.result.error is not None
        ]
        return BatchOutcome(
            outcomes=ordered,
            partial=bool(errors),
            errors=errors,
        )


def clamp_concurrency(value: int) -> int:
    return max(1, min(value, MAX_CONCURRENCY_CEILING))


async def run_batch(
    client: ReviewerClient,
    requests: Sequence[ReviewRequest],
    *,
    timeout_s: float,
    schema: Type[BaseModel],
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    audit_id: Optional[str] = None,
    emitter: Optional[AuditEventEmitter] = None,
) -> BatchOutcome:
    emitter = emitter or NullEventEmitter()
    limiter = anyio.CapacityLimiter(clamp_concurrency(max_concurrency))
    accumulator = _BatchAccumulator(len(requests))

    if not requests:
        return accumulator.merge()

    send_stream, receive_stream = anyio.create_memory_object_stream(
        max_buffer_size=len(requests)
    )

    async def worker(request: ReviewRequest, outbox: ObjectSendStream) -> None:
        async with outbox:
            async with limiter:
                logger.debug("Reviewer chunk %d started", request.index)
                if audit_id is not None:
                    await emitter.emit(
                        AuditEvent(
                            audit_id=audit_id,
                            event_type=AuditEventType.REVIEWER_CALL_STARTED,
                            details={
                                "chunk_index": request.index,
                                "chunks": len(requests),
                            },
                        )
                    )
                result = await client.call(
                    request.system,
                    request.user,
                    timeout_s=timeout_s,
                    schema=schema,
                )
            await outbox.send(ChunkOutcome(index=request.index, result=result))

    async with anyio.create_task_group() as tg:
        async with send_stream:
            for request in requests:
                tg.start_soon(worker, request, send_stream.clone())

        async with receive_stream:
            async for outcome in receive_stream:
                accumulator.add(outcome)
                logger.info(
                    "Reviewer chunk %d/%d finished success=%s",
                    outcome.index + 1,
                    len(requests),
                    outcome.result.success,
                )
                if audit_id is not None:
                    await emitter.emit(
                        AuditEvent(
                            audit_id=audit_id,
                            event_type=AuditEventType.REVIEWER_CALL_COMPLETED,
                            details={
                                "chunk_index": outcome.index,
                                "chunks": len(requests),
                                "success": outcome.result.success,
                                "error_kind": (
                                    outcome.result.error.kind.value
                                    if outcome.result.error
                                    else None
                                ),
                            },
                        )
                    )

    return accumulator.merge()
