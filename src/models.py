"""Shared Pydantic data models for the messenger completion bridge."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class EventKind(str, Enum):
    MESSAGE = "message"
    POSTBACK = "postback"


class ResponseShape(str, Enum):
    PLAIN = "plain"
    STRUCTURED = "structured"


class EventPolicy(str, Enum):
    """Which messaging events of a webhook entry get processed."""

    FIRST_ONLY = "first_only"
    ALL = "all"


class AttemptStatus(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class AuditEventType(str, Enum):
    VERIFICATION_SUCCESS = "verification_success"
    VERIFICATION_FAILURE = "verification_failure"
    PAYLOAD_REJECTED = "payload_rejected"
    COMPLETION_SUCCESS = "completion_success"
    COMPLETION_FAILURE = "completion_failure"
    MESSAGE_SENT = "message_sent"
    MESSAGE_SEND_FAILURE = "message_send_failure"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Inbound Models ---


class InboundEvent(BaseModel):
    """A single messaging event pulled out of a webhook entry."""

    model_config = ConfigDict(frozen=True)

    sender_id: str
    kind: EventKind
    text: str | None = None
    payload: str | None = None


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: int
    content: str


class DispatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: int
    content: str
    events_processed: int = 0


# --- Completion Models ---


class CompletionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_text: str
    system_instruction: str
    response_shape: ResponseShape = ResponseShape.PLAIN


class AttemptOutcome(BaseModel):
    """Tagged result of one upstream call; the retry driver inspects ``status``."""

    model_config = ConfigDict(frozen=True)

    status: AttemptStatus
    status_code: int
    body: dict[str, Any] | None = None
    reason: str = ""


class CompletionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    raw_text: str | None = None
    attempts: int = Field(ge=0, default=0)
    error: str | None = None
    parsed: bool = True  # False when a 2xx body was not valid JSON


class StructuredReply(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    body: str = ""
    question: str = ""

    def render(self) -> str:
        return f"{self.title}\n\n{self.body}\n\n{self.question}"


# --- Outbound Models ---


class OutboundMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipient_id: str
    text: str

    def to_payload(self) -> dict[str, Any]:
        """Send API request body."""
        return {
            "recipient": {"id": self.recipient_id},
            "message": {"text": self.text},
        }


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    sender_id: str | None = None
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure" | "rejected"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
