"""
Caller-side retry policy for reviewer calls.

Disabled by default (one attempt). When enabled, only transport
failures and throttled/5xx upstream answers are retried. Parse and
schema failures are never retried.
"""

from __future__ import annotations

import logging
from typing import Type

from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from compliance_review.app.reviewer.client import ReviewerCallResult, ReviewerClient

logger = logging.getLogger(__name__)


def _should_retry(result: ReviewerCallResult) -> bool:
    return not result.success and result.error is not None and result.error.retryable


def _last_result(state: RetryCallState) -> ReviewerCallResult:
    return state.outcome.result()


class RetryingReviewerClient:
    """Wraps a `ReviewerClient` with bounded exponential-backoff retries."""

    def __init__(
        self,
        inner: ReviewerClient,
        *,
        max_attempts: int,
        wait_min_s: float = 1.0,
        wait_max_s: float = 10.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._inner = inner
        self._max_attempts = max_attempts
        self._wait_min_s = wait_min_s
        self._wait_max_s = wait_max_s

    async def aclose(self) -> None:
        await self._inner.aclose()

    async def call(
        self,
        system: str,
        user: str,
        *,
        timeout_s: float,
        schema: Type[BaseModel],
    ) -> ReviewerCallResult:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(min=self._wait_min_s, max=self._wait_max_s),
            retry=retry_if_result(_should_retry),
            retry_error_callback=_last_result,
            before_sleep=self._log_retry,
        )
        return await retrying(
            self._inner.call,
            system,
            user,
            timeout_s=timeout_s,
            schema=schema,
        )

    @staticmethod
    def _log_retry(state: RetryCallState) -> None:
        result = state.outcome.result()
        logger.info(
            "Retrying reviewer call (attempt %d): %s",
            state.attempt_number,
            result.error.kind.value if result.error else "unknown",
        )


def with_retries(client: ReviewerClient, max_attempts: int) -> ReviewerClient:
    """Return `client` unchanged unless more than one attempt is configured."""
    if max_attempts <= 1:
        return client
    return RetryingReviewerClient(client, max_attempts=max_attempts)
