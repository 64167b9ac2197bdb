"""Messenger webhook dispatcher.

Handles the Meta verification challenge (GET) and page event delivery
(POST): extracts messaging events per entry and routes text messages to
the completion relay and get-started postbacks to the welcome message.
"""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING, Any

from src.completion.relay import WELCOME_TEXT
from src.models import (
    AuditEvent,
    AuditEventType,
    DispatchResult,
    EventKind,
    EventPolicy,
    InboundEvent,
    RiskLevel,
    VerificationResult,
)

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.completion.relay import CompletionRelay
    from src.webhook.messenger import MessengerClient

logger = logging.getLogger(__name__)

PAGE_OBJECT = "page"
GET_STARTED_PAYLOAD = "GET_STARTED_PAYLOAD"
EVENT_RECEIVED = "EVENT_RECEIVED"


class EventDispatcher:
    """Classifies webhook requests and routes page events."""

    def __init__(
        self,
        verify_token: str,
        relay: CompletionRelay,
        sender: MessengerClient,
        event_policy: EventPolicy = EventPolicy.FIRST_ONLY,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._verify_token = verify_token
        self._relay = relay
        self._sender = sender
        self._policy = event_policy
        self._audit = audit_logger

    def handle_verification(self, params: dict[str, str]) -> VerificationResult:
        """Echo ``hub.challenge`` when ``hub.verify_token`` matches, else 403.

        Constant-time comparison via hmac.compare_digest.
        """
        token = params.get("hub.verify_token", "")
        if token and hmac.compare_digest(token.encode(), self._verify_token.encode()):
            self._log(AuditEventType.VERIFICATION_SUCCESS, "success", RiskLevel.INFO)
            return VerificationResult(
                status_code=200, content=params.get("hub.challenge", ""),
            )

        logger.warning("Webhook verification failed: token mismatch")
        self._log(AuditEventType.VERIFICATION_FAILURE, "failure", RiskLevel.HIGH)
        return VerificationResult(status_code=403, content="Forbidden")

    def extract_events(self, payload: dict[str, Any]) -> list[InboundEvent]:
        """Pull messaging events out of each entry according to the event policy.

        Message text is trimmed and lowercased. Events without a sender id
        are skipped, as are entries with no messaging events.
        """
        events: list[InboundEvent] = []
        entries = payload.get("entry")
        if not isinstance(entries, list):
            return events
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            messaging = entry.get("messaging")
            if not isinstance(messaging, list):
                continue
            if self._policy == EventPolicy.FIRST_ONLY:
                messaging = messaging[:1]
            for raw in messaging:
                event = self._to_event(raw)
                if event is not None:
                    events.append(event)
        return events

    @staticmethod
    def _to_event(raw: Any) -> InboundEvent | None:
        if not isinstance(raw, dict):
            return None
        sender = raw.get("sender")
        sender_id = sender.get("id") if isinstance(sender, dict) else None
        if not sender_id:
            return None

        message = raw.get("message")
        if isinstance(message, dict):
            text = message.get("text")
            if not isinstance(text, str):
                text = ""
            return InboundEvent(
                sender_id=str(sender_id),
                kind=EventKind.MESSAGE,
                text=text.strip().lower(),
            )
        postback = raw.get("postback")
        if isinstance(postback, dict):
            payload = postback.get("payload")
            return InboundEvent(
                sender_id=str(sender_id),
                kind=EventKind.POSTBACK,
                payload=payload if isinstance(payload, str) else None,
            )
        return None

    async def dispatch(self, payload: Any) -> DispatchResult:
        """Process a delivery request; always acknowledges a page payload."""
        if not isinstance(payload, dict) or payload.get("object") != PAGE_OBJECT:
            self._log(
                AuditEventType.PAYLOAD_REJECTED, "rejected", RiskLevel.LOW,
                details={"object": payload.get("object") if isinstance(payload, dict) else None},
            )
            return DispatchResult(status_code=404, content="Not Found")

        processed = 0
        for event in self.extract_events(payload):
            try:
                if await self.handle_event(event):
                    processed += 1
            except Exception:
                # Delivery must still be acknowledged or the platform redelivers.
                logger.exception("Failed to process event from %s", event.sender_id)

        return DispatchResult(
            status_code=200, content=EVENT_RECEIVED, events_processed=processed,
        )

    async def handle_event(self, event: InboundEvent) -> bool:
        """Route one event. Returns True if a reply was sent."""
        if event.kind == EventKind.MESSAGE:
            logger.debug("User message from %s: %s", event.sender_id, event.text)
            if not event.text:
                return False
            await self._relay.relay(event.sender_id, event.text)
            return True

        if event.kind == EventKind.POSTBACK and event.payload == GET_STARTED_PAYLOAD:
            await self._sender.send(event.sender_id, WELCOME_TEXT)
            return True
        return False

    def _log(
        self,
        event_type: AuditEventType,
        result: str,
        risk_level: RiskLevel,
        details: dict[str, object] | None = None,
    ) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(AuditEvent(
                event_type=event_type,
                action="webhook",
                result=result,
                risk_level=risk_level,
                details=details,
            ))
        except OSError:
            logger.exception("Failed to write audit event %s", event_type.value)
