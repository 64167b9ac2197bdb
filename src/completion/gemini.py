"""Gemini ``generateContent`` client with bounded retry.

Each upstream call yields a tagged AttemptOutcome; the retry driver in
``generate`` inspects the tag instead of catching its own exceptions.
503 is retried with exponential backoff (base, 2*base, 4*base ...), any
other non-2xx status fails at once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from src.models import (
    AttemptOutcome,
    AttemptStatus,
    CompletionRequest,
    CompletionResult,
    ResponseShape,
)

logger = logging.getLogger(__name__)

_GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
_RETRYABLE_STATUS = 503

STRUCTURED_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "body": {"type": "STRING"},
        "question": {"type": "STRING"},
    },
    "propertyOrdering": ["title", "body", "question"],
}


class CompletionTransportError(Exception):
    """Raised when the final upstream attempt fails at the network level."""

    def __init__(self, attempts: int, cause: httpx.HTTPError) -> None:
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Completion API unreachable after {attempts} attempt(s): {cause!r}",
        )


def extract_candidate_text(body: dict[str, Any] | None) -> str | None:
    """Return ``candidates[0].content.parts[0].text`` or None if absent."""
    if not isinstance(body, dict):
        return None
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) and text else None


class GeminiClient:
    """Calls the completion API for a single user prompt."""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        timeout: float = 30.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self._api_key = api_key
        self._model = model
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{_GEMINI_API_BASE}/{self._model}:generateContent"

    def build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.user_text}]}],
            "systemInstruction": {"parts": [{"text": request.system_instruction}]},
        }
        if request.response_shape == ResponseShape.STRUCTURED:
            payload["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": STRUCTURED_RESPONSE_SCHEMA,
            }
        return payload

    async def attempt(
        self, client: httpx.AsyncClient, payload: dict[str, Any],
    ) -> AttemptOutcome:
        """Issue one upstream call and classify the response."""
        resp = await client.post(
            self.endpoint,
            params={"key": self._api_key},
            json=payload,
            timeout=self._timeout,
        )

        if 200 <= resp.status_code < 300:
            try:
                body = resp.json()
            except ValueError:
                return AttemptOutcome(
                    status=AttemptStatus.SUCCESS,
                    status_code=resp.status_code,
                    reason="unparseable body",
                )
            return AttemptOutcome(
                status=AttemptStatus.SUCCESS,
                status_code=resp.status_code,
                body=body if isinstance(body, dict) else None,
            )
        if resp.status_code == _RETRYABLE_STATUS:
            return AttemptOutcome(
                status=AttemptStatus.RETRYABLE,
                status_code=resp.status_code,
                reason="service overloaded",
            )
        return AttemptOutcome(
            status=AttemptStatus.FATAL,
            status_code=resp.status_code,
            reason=f"API Error: {resp.status_code}",
        )

    async def generate(self, request: CompletionRequest) -> CompletionResult:
        """Run the bounded retry loop for one completion request.

        Raises:
            CompletionTransportError: the last attempt raised an httpx error.
        """
        payload = self.build_payload(request)

        async with httpx.AsyncClient(verify=True) as client:
            for i in range(self._max_attempts):
                last = i == self._max_attempts - 1
                try:
                    outcome = await self.attempt(client, payload)
                except httpx.HTTPError as exc:
                    logger.error("Completion API call failed (attempt %d): %r", i + 1, exc)
                    if last:
                        raise CompletionTransportError(i + 1, exc) from exc
                    continue

                if outcome.status == AttemptStatus.SUCCESS:
                    return CompletionResult(
                        ok=True,
                        raw_text=extract_candidate_text(outcome.body),
                        attempts=i + 1,
                        parsed=outcome.body is not None,
                    )
                if outcome.status == AttemptStatus.FATAL:
                    break
                if not last:
                    delay = self._backoff_base * 2 ** i
                    logger.info(
                        "API returned %d, retrying in %s seconds...",
                        outcome.status_code, delay,
                    )
                    await asyncio.sleep(delay)

        reason = outcome.reason
        if outcome.status == AttemptStatus.RETRYABLE:
            reason = f"retries exhausted ({outcome.status_code})"
        logger.error("Completion API failed: %s", reason)
        return CompletionResult(
            ok=False,
            attempts=i + 1,
            error=reason,
        )
