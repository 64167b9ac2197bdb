"""Turn completion text into something Messenger displays as plain text."""

from __future__ import annotations

import json
import re

from pydantic import ValidationError

from src.models import StructuredReply

_BOLD = re.compile(r"\*\*(.*?)\*\*")
_ITALIC = re.compile(r"\*(.*?)\*")
_LEADING_BULLET = re.compile(r"^- ", re.MULTILINE)


class ReplyFormatError(ValueError):
    """Structured-mode output did not match the title/body/question shape."""


def sanitize_markdown(text: str) -> str:
    """Strip bold/italic markers and turn a leading "- " into a bullet.

    Only a "- " at the start of a line counts as a list marker.
    """
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    return _LEADING_BULLET.sub("• ", text)


def parse_structured_reply(raw_text: str) -> StructuredReply:
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ReplyFormatError(f"not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ReplyFormatError(f"expected a JSON object, got {type(data).__name__}")
    try:
        return StructuredReply.model_validate(data)
    except ValidationError as exc:
        raise ReplyFormatError(str(exc)) from exc


def assemble_structured(raw_text: str) -> str:
    """Render structured output as title, blank line, body, blank line, question."""
    return parse_structured_reply(raw_text).render()
