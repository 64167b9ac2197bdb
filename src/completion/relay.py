"""Completion relay — user text in, exactly one Messenger reply out.

Stages:
1. Build the completion request for the configured response shape
2. Call the completion API (bounded retry lives in GeminiClient)
3. Shape the reply: sanitize plain text or assemble structured JSON
4. Send one message, falling back to a fixed apology on any failure
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.completion.formatting import (
    ReplyFormatError,
    assemble_structured,
    sanitize_markdown,
)
from src.completion.gemini import CompletionTransportError
from src.models import (
    AuditEvent,
    AuditEventType,
    CompletionRequest,
    CompletionResult,
    ResponseShape,
    RiskLevel,
)

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.completion.gemini import GeminiClient
    from src.webhook.messenger import MessengerClient

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Hi there! 👋 I'm your assistant. Ask me anything you'd like help with."
)
NO_ANSWER_TEXT = "Sorry, I couldn't find an answer. Please try again."
PROCESSING_ERROR_TEXT = (
    "Sorry, there was a problem processing the response from the server."
)
CONNECTION_ERROR_TEXT = (
    "Sorry, something went wrong while connecting. "
    "Please check the API key or try again later."
)

PLAIN_SYSTEM_INSTRUCTION = (
    "You are a warm, friendly conversational assistant. Your job is to hold "
    "enjoyable, useful conversations on a wide range of topics. Keep a warm, "
    "welcoming tone that feels close to the user. You can share information, "
    "answer general questions, or simply chat. Respond to open-ended "
    "questions with tact and enthusiasm. Use Markdown sparingly to highlight "
    "key points."
)
STRUCTURED_SYSTEM_INSTRUCTION = (
    "You are a specialised educational assistant. Your job is to give "
    "students detailed yet simplified answers, then guide them by asking a "
    "follow-up question. Keep an encouraging, welcoming tone. Reply with JSON "
    "only, containing the fields 'title' (the topic), 'body' (the details) "
    "and 'question' (the guiding question for the student)."
)

DEFAULT_SYSTEM_INSTRUCTIONS = {
    ResponseShape.PLAIN: PLAIN_SYSTEM_INSTRUCTION,
    ResponseShape.STRUCTURED: STRUCTURED_SYSTEM_INSTRUCTION,
}


class CompletionRelay:
    """Forwards user text to the completion API and relays the reply."""

    def __init__(
        self,
        client: GeminiClient,
        sender: MessengerClient,
        response_shape: ResponseShape = ResponseShape.STRUCTURED,
        system_instruction: str | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._client = client
        self._sender = sender
        self._shape = response_shape
        self._system_instruction = (
            system_instruction or DEFAULT_SYSTEM_INSTRUCTIONS[response_shape]
        )
        self._audit = audit_logger

    def build_request(self, user_text: str) -> CompletionRequest:
        return CompletionRequest(
            user_text=user_text,
            system_instruction=self._system_instruction,
            response_shape=self._shape,
        )

    async def compose_reply(self, user_text: str) -> str:
        """Produce the text to send for ``user_text``. Never raises for upstream failures."""
        try:
            result = await self._client.generate(self.build_request(user_text))
        except CompletionTransportError as exc:
            logger.error("Completion API unreachable: %s", exc)
            result = CompletionResult(ok=False, attempts=exc.attempts, error=str(exc.cause))

        self._audit_result(result)
        if not result.ok:
            return CONNECTION_ERROR_TEXT
        return self.format_reply(result)

    def format_reply(self, result: CompletionResult) -> str:
        if not result.parsed:
            return PROCESSING_ERROR_TEXT
        if not result.raw_text:
            return NO_ANSWER_TEXT
        if self._shape == ResponseShape.STRUCTURED:
            try:
                return assemble_structured(result.raw_text)
            except ReplyFormatError as exc:
                logger.error("JSON parsing error: %s", exc)
                return PROCESSING_ERROR_TEXT
        return sanitize_markdown(result.raw_text)

    async def relay(self, sender_id: str, user_text: str) -> str:
        """Compose a reply for ``user_text`` and send it to ``sender_id``.

        Exactly one send is issued whatever the upstream outcome. Returns
        the text that was sent.
        """
        text = await self.compose_reply(user_text)
        await self._sender.send(sender_id, text)
        return text

    def _audit_result(self, result: CompletionResult) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(AuditEvent(
                event_type=(
                    AuditEventType.COMPLETION_SUCCESS if result.ok
                    else AuditEventType.COMPLETION_FAILURE
                ),
                action="generate",
                result="success" if result.ok else "failure",
                risk_level=RiskLevel.INFO if result.ok else RiskLevel.MEDIUM,
                details={
                    "attempts": result.attempts,
                    "response_shape": self._shape.value,
                    **({"error": result.error} if result.error else {}),
                },
            ))
        except OSError:
            # The reply still goes out when the audit trail is unwritable.
            logger.exception("Failed to write completion audit event")
