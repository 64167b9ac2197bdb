"""Messenger Send API client.

One POST per message, no retry. Delivery is best effort: failures are
logged and audited but never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from src.models import AuditEvent, AuditEventType, OutboundMessage, RiskLevel

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

_GRAPH_API_BASE = "https://graph.facebook.com"


class MessengerClient:
    """Sends plain-text messages to a page-scoped user id."""

    def __init__(
        self,
        page_access_token: str,
        graph_api_version: str = "v16.0",
        timeout: float = 10.0,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._access_token = page_access_token
        self._api_version = graph_api_version
        self._timeout = timeout
        self._audit = audit_logger

    @property
    def url(self) -> str:
        return f"{_GRAPH_API_BASE}/{self._api_version}/me/messages"

    async def send(self, recipient_id: str, text: str) -> bool:
        """Send ``text`` to ``recipient_id``; returns True if the platform accepted it."""
        message = OutboundMessage(recipient_id=recipient_id, text=text)

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self.url,
                    params={"access_token": self._access_token},
                    json=message.to_payload(),
                    timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            logger.warning("Send API call to %s failed: %r", recipient_id, exc)
            self._log(recipient_id, ok=False, details={"error": type(exc).__name__})
            return False

        if resp.status_code >= 400:
            logger.warning(
                "Send API rejected message to %s: %d", recipient_id, resp.status_code,
            )
            self._log(recipient_id, ok=False, details={"status_code": resp.status_code})
            return False

        self._log(recipient_id, ok=True, details={"status_code": resp.status_code})
        return True

    def _log(self, recipient_id: str, ok: bool, details: dict[str, object]) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(AuditEvent(
                event_type=(
                    AuditEventType.MESSAGE_SENT if ok
                    else AuditEventType.MESSAGE_SEND_FAILURE
                ),
                sender_id=recipient_id,
                action="send_message",
                result="success" if ok else "failure",
                risk_level=RiskLevel.INFO if ok else RiskLevel.MEDIUM,
                details=details,
            ))
        except OSError:
            logger.exception("Failed to write audit event for %s", recipient_id)
