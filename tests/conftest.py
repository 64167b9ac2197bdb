"""Shared test fixtures for the messenger completion bridge."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.config import BridgeConfig
from src.models import AuditEvent, AuditEventType, RiskLevel


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def env() -> dict[str, str]:
    return {
        "VERIFY_TOKEN": "test_verify",
        "PAGE_ACCESS_TOKEN": "test_page_token",
        "API_KEY": "test_api_key",
    }


# --- Factory functions for test data ---


def make_config(**kwargs: Any) -> BridgeConfig:
    """Factory for BridgeConfig with sensible defaults."""
    defaults: dict[str, Any] = {
        "verify_token": "test_verify",
        "page_access_token": "test_page_token",
        "api_key": "test_api_key",
        "backoff_base": 0,
    }
    defaults.update(kwargs)
    return BridgeConfig(**defaults)


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.VERIFICATION_FAILURE,
        "action": "webhook",
        "result": "failure",
        "risk_level": RiskLevel.HIGH,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)


def make_messaging_event(
    sender_id: str = "USER_1",
    text: str | None = "Hello",
    postback: str | None = None,
) -> dict[str, Any]:
    event: dict[str, Any] = {"sender": {"id": sender_id}, "recipient": {"id": "PAGE_ID"}}
    if postback is not None:
        event["postback"] = {"title": "Get Started", "payload": postback}
    else:
        event["message"] = {"mid": "m_1", "text": text} if text is not None else {"mid": "m_1"}
    return event


def make_page_payload(*entries: list[dict[str, Any]], object_tag: str = "page") -> dict[str, Any]:
    """Webhook delivery body; each positional arg is one entry's messaging list."""
    if not entries:
        entries = ([make_messaging_event()],)
    return {
        "object": object_tag,
        "entry": [
            {"id": "PAGE_ID", "time": 1700000000, "messaging": messaging}
            for messaging in entries
        ],
    }


def make_gemini_body(text: str | None = "Hi!") -> dict[str, Any]:
    if text is None:
        return {"candidates": []}
    return {
        "candidates": [
            {"content": {"role": "model", "parts": [{"text": text}]}},
        ],
    }


def make_structured_text(title: str = "T", body: str = "B", question: str = "Q") -> str:
    return json.dumps({"title": title, "body": body, "question": question})


def make_http_response(status_code: int = 200, body: Any = None) -> MagicMock:
    """httpx.Response stand-in; a None body makes ``.json()`` raise."""
    resp = MagicMock(status_code=status_code)
    if body is None:
        resp.json.side_effect = json.JSONDecodeError("Expecting value", "", 0)
    else:
        resp.json.return_value = body
    return resp


def make_async_client(post: Any) -> tuple[MagicMock, AsyncMock]:
    """Build an httpx.AsyncClient class mock whose instance ``post`` is ``post``.

    ``post`` is either a single response or a list used as side_effect.
    """
    mock_client = AsyncMock()
    if isinstance(post, list):
        mock_client.post.side_effect = post
    else:
        mock_client.post.return_value = post
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls = MagicMock(return_value=mock_client)
    return mock_client_cls, mock_client
