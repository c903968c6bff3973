"""
Batched reviewer execution.

Verifies that:
- a failing chunk never discards its siblings
- merged results follow chunk order, not completion order
- in-flight calls never exceed the concurrency bound
- retries apply only to transient failures
"""

from __future__ import annotations

import pytest

from compliance_review.app.events.models import AuditEventType
from compliance_review.app.reviewer.batch import (
    ReviewRequest,
    clamp_concurrency,
    run_batch,
)
from compliance_review.app.reviewer.client import ReviewerCallErrorKind
from compliance_review.app.reviewer.retry import RetryingReviewerClient, with_retries
from compliance_review.app.schemas.payloads import SemanticPayload
from compliance_review.tests.fake_reviewer_client import FakeReviewerClient
from compliance_review.tests.helpers import ListEmitter

pytestmark = pytest.mark.anyio


def _requests(n: int):
    return [ReviewRequest(index=i, system="sys", user=f"chunk-{i}") for i in range(n)]


def _finding(problem: str) -> dict:
    return {
        "semantic_extra": [
            {"severity": "high", "must_fix": True, "problem": problem}
        ]
    }


async def test_failed_middle_chunk_keeps_siblings():
    def responder(system, user):
        if user == "chunk-1":
            return ReviewerCallErrorKind.NETWORK_OR_TIMEOUT
        return _finding(user)

    outcome = await run_batch(
        FakeReviewerClient(responder=responder),
        _requests(3),
        timeout_s=1.0,
        schema=SemanticPayload,
    )

    assert outcome.partial is True
    assert outcome.any_success is True
    assert [e.chunk_index for e in outcome.errors] == [1]
    assert outcome.errors[0].kind == "network_or_timeout"
    assert [p.semantic_extra[0].problem for p in outcome.payloads] == [
        "chunk-0",
        "chunk-2",
    ]


async def test_merge_order_ignores_completion_order():
    delays = {"chunk-0": 0.06, "chunk-1": 0.0, "chunk-2": 0.03}

    outcome = await run_batch(
        FakeReviewerClient(
            responder=lambda system, user: _finding(user),
            delay_s=lambda user: delays[user],
        ),
        _requests(3),
        timeout_s=1.0,
        schema=SemanticPayload,
        max_concurrency=3,
    )

    assert outcome.partial is False
    assert [o.index for o in outcome.outcomes] == [0, 1, 2]
    assert [p.semantic_extra[0].problem for p in outcome.payloads] == [
        "chunk-0",
        "chunk-1",
        "chunk-2",
    ]


async def test_in_flight_calls_respect_bound():
    client = FakeReviewerClient(payload={"semantic_extra": []}, delay_s=0.01)

    outcome = await run_batch(
        client,
        _requests(8),
        timeout_s=1.0,
        schema=SemanticPayload,
        max_concurrency=2,
    )

    assert len(outcome.outcomes) == 8
    assert len(client.calls) == 8
    assert client.max_in_flight <= 2


async def test_all_chunks_failing_is_reported_per_chunk():
    outcome = await run_batch(
        FakeReviewerClient(failure=ReviewerCallErrorKind.SCHEMA_VIOLATION),
        _requests(2),
        timeout_s=1.0,
        schema=SemanticPayload,
    )

    assert outcome.any_success is False
    assert outcome.payloads == []
    assert [e.chunk_index for e in outcome.errors] == [0, 1]


async def test_empty_batch_makes_no_calls():
    client = FakeReviewerClient()

    outcome = await run_batch(client, [], timeout_s=1.0, schema=SemanticPayload)

    assert outcome.outcomes == []
    assert client.calls == []


async def test_chunk_completion_events_are_emitted():
    emitter = ListEmitter()

    await run_batch(
        FakeReviewerClient(payload={"semantic_extra": []}),
        _requests(2),
        timeout_s=1.0,
        schema=SemanticPayload,
        audit_id="a-1",
        emitter=emitter,
    )

    completed = [
        e for e in emitter.events
        if e.event_type == AuditEventType.REVIEWER_CALL_COMPLETED
    ]
    started = [
        e for e in emitter.events
        if e.event_type == AuditEventType.REVIEWER_CALL_STARTED
    ]
    assert len(emitter.events) == 4
    assert sorted(e.details["chunk_index"] for e in started) == [0, 1]
    assert sorted(e.details["chunk_index"] for e in completed) == [0, 1]


def test_concurrency_is_clamped():
    assert clamp_concurrency(0) == 1
    assert clamp_concurrency(3) == 3
    assert clamp_concurrency(16) == 4


# ----------------------------------------------------------------------
# Retry policy
# ----------------------------------------------------------------------


def test_single_attempt_returns_client_unchanged():
    client = FakeReviewerClient()

    assert with_retries(client, 1) is client
    assert isinstance(with_retries(client, 3), RetryingReviewerClient)


async def test_transient_failure_is_retried_until_success():
    replies = [ReviewerCallErrorKind.UPSTREAM_ERROR, {"semantic_extra": []}]
    inner = FakeReviewerClient(responder=lambda system, user: replies.pop(0))
    client = RetryingReviewerClient(inner, max_attempts=3, wait_min_s=0, wait_max_s=0)

    result = await client.call("s", "u", timeout_s=1.0, schema=SemanticPayload)

    assert result.success is True
    assert len(inner.calls) == 2


async def test_exhausted_retries_return_last_failure():
    inner = FakeReviewerClient(failure=ReviewerCallErrorKind.NETWORK_OR_TIMEOUT)
    client = RetryingReviewerClient(inner, max_attempts=2, wait_min_s=0, wait_max_s=0)

    result = await client.call("s", "u", timeout_s=1.0, schema=SemanticPayload)

    assert result.success is False
    assert result.error.kind == ReviewerCallErrorKind.NETWORK_OR_TIMEOUT
    assert len(inner.calls) == 2


async def test_schema_violation_is_never_retried():
    inner = FakeReviewerClient(failure=ReviewerCallErrorKind.SCHEMA_VIOLATION)
    client = RetryingReviewerClient(inner, max_attempts=3, wait_min_s=0, wait_max_s=0)

    result = await client.call("s", "u", timeout_s=1.0, schema=SemanticPayload)

    assert result.error.kind == ReviewerCallErrorKind.SCHEMA_VIOLATION
    assert len(inner.calls) == 1
