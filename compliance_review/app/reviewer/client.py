"""
External reviewer client.

One HTTP POST per call against an OpenAI-compatible chat-completions
endpoint. The reviewer is an unreliable collaborator: every outcome is
normalized into a `ReviewerCallResult`.

IMPORTANT:
- `call()` NEVER raises (cancellation excepted).
- No retries happen here; see `retry.py` for the caller-side policy.
- Payloads are schema-checked immediately after parsing.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Type

import anyio
import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from compliance_review.app.schemas.report import ReviewError

logger = logging.getLogger(__name__)

RAW_BODY_CAP = 2000
PREVIEW_CAP = 1200


# ----------------------------------------------------------------------
# Result types
# ----------------------------------------------------------------------


class ReviewerCallErrorKind(str, Enum):
    NETWORK_OR_TIMEOUT = "network_or_timeout"
    UPSTREAM_ERROR = "upstream_error"
    ENVELOPE_NOT_JSON = "envelope_not_json"
    PAYLOAD_NOT_JSON = "payload_not_json"
    SCHEMA_VIOLATION = "schema_violation"


class ReviewerCallError(BaseModel):
    kind: ReviewerCallErrorKind
    message: str
    status: Optional[int] = None
    preview: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def retryable(self) -> bool:
        """Transport failures and throttled/5xx upstream answers."""
        if self.kind == ReviewerCallErrorKind.NETWORK_OR_TIMEOUT:
            return True
        if self.kind == ReviewerCallErrorKind.UPSTREAM_ERROR and self.status is not None:
            return self.status == 429 or self.status >= 500
        return False

    def to_review_error(self, chunk_index: Optional[int] = None) -> ReviewError:
        return ReviewError(
            kind=self.kind.value,
            message=self.message,
            status=self.status,
            preview=self.preview,
            chunk_index=chunk_index,
        )


class ReviewerCallResult(BaseModel):
    """
    Canonical outcome of one reviewer call.

    Exactly one of `payload` / `error` is set.
    """

    success: bool
    payload: Optional[BaseModel] = None
    error: Optional[ReviewerCallError] = None
    model: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def ok(cls, payload: BaseModel, model: str = "") -> "ReviewerCallResult":
        return cls(success=True, payload=payload, model=model)

    @classmethod
    def failed(
        cls,
        kind: ReviewerCallErrorKind,
        message: str,
        *,
        status: Optional[int] = None,
        preview: Optional[str] = None,
        model: str = "",
    ) -> "ReviewerCallResult":
        return cls(
            success=False,
            error=ReviewerCallError(
                kind=kind,
                message=message,
                status=status,
                preview=preview,
            ),
            model=model,
        )


# ----------------------------------------------------------------------
# Client interface
# ----------------------------------------------------------------------


class ReviewerClient(Protocol):
    async def call(
        self,
        system: str,
        user: str,
        *,
        timeout_s: float,
        schema: Type[BaseModel],
    ) -> ReviewerCallResult:
        ...

    async def aclose(self) -> None:
        ...


# ----------------------------------------------------------------------
# Payload parsing
# ----------------------------------------------------------------------


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse `text` as a JSON object.

    Falls back to the span from the first `{` to the last `}` when the
    model wraps its JSON in prose or code fences.
    """
    if not text:
        return None

    candidates = [text]
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


def envelope_content(envelope: Any) -> Optional[str]:
    """Return `choices[0].message.content`, or None when absent."""
    try:
        content = envelope["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


def parse_payload(
    content: Optional[str],
    schema: Type[BaseModel],
    *,
    model: str = "",
) -> ReviewerCallResult:
    """Parse and schema-check the inner reviewer payload."""
    obj = extract_json_object(content or "")
    if obj is None:
        return ReviewerCallResult.failed(
            ReviewerCallErrorKind.PAYLOAD_NOT_JSON,
            "Reviewer payload is not a JSON object",
            preview=(content or "")[:PREVIEW_CAP],
            model=model,
        )

    try:
        payload = schema.model_validate(obj)
    except ValidationError as exc:
        return ReviewerCallResult.failed(
            ReviewerCallErrorKind.SCHEMA_VIOLATION,
            f"Reviewer payload failed {schema.__name__} validation: "
            f"{exc.error_count()} error(s)",
            preview=(content or "")[:PREVIEW_CAP],
            model=model,
        )

    return ReviewerCallResult.ok(payload, model=model)


# ----------------------------------------------------------------------
# HTTP implementation
# ----------------------------------------------------------------------


class HttpReviewerClient:
    """
    Chat-completions reviewer over httpx.

    The underlying `httpx.AsyncClient` may be injected (tests pass one
    built on `httpx.MockTransport`); otherwise one is created and owned.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        api_key: str = "",
        temperature: float = 0.1,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._endpoint = endpoint
        self._model = model
        self._api_key = api_key
        self._temperature = temperature
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=None)

    @property
    def model(self) -> str:
        return self._model

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(
        self,
        system: str,
        user: str,
        *,
        timeout_s: float,
        schema: Type[BaseModel],
    ) -> ReviewerCallResult:
        body = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self._temperature,
            "response_format": {"type": "json_object"},
        }

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            with anyio.fail_after(timeout_s):
                response = await self._client.post(
                    self._endpoint,
                    json=body,
                    headers=headers,
                )
        except TimeoutError:
            return self._failed(
                ReviewerCallErrorKind.NETWORK_OR_TIMEOUT,
                f"Reviewer call timed out after {timeout_s:g}s",
            )
        except httpx.HTTPError as exc:
            return self._failed(
                ReviewerCallErrorKind.NETWORK_OR_TIMEOUT,
                f"Reviewer transport failure: {exc.__class__.__name__}: {exc}",
            )

        raw = response.text

        if not response.is_success:
            return self._failed(
                ReviewerCallErrorKind.UPSTREAM_ERROR,
                f"Reviewer returned HTTP {response.status_code}",
                status=response.status_code,
                preview=raw[:RAW_BODY_CAP],
            )

        try:
            envelope = json.loads(raw)
        except ValueError:
            return self._failed(
                ReviewerCallErrorKind.ENVELOPE_NOT_JSON,
                "Reviewer response envelope is not JSON",
                status=response.status_code,
                preview=raw[:RAW_BODY_CAP],
            )

        result = parse_payload(
            envelope_content(envelope),
            schema,
            model=self._model,
        )
        if result.error is not None:
            self._log_failure(result.error)
        return result

    def _failed(
        self,
        kind: ReviewerCallErrorKind,
        message: str,
        *,
        status: Optional[int] = None,
        preview: Optional[str] = None,
    ) -> ReviewerCallResult:
        result = ReviewerCallResult.failed(
            kind,
            message,
            status=status,
            preview=preview,
            model=self._model,
        )
        self._log_failure(result.error)
        return result

    @staticmethod
    def _log_failure(error: ReviewerCallError) -> None:
        logger.warning(
            "Reviewer call failed kind=%s status=%s: %s",
            error.kind.value,
            error.status,
            error.message,
        )
