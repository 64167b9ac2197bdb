"""Tests for reply formatting: Markdown sanitizing and structured assembly."""

from __future__ import annotations

import pytest

from src.completion.formatting import (
    ReplyFormatError,
    assemble_structured,
    parse_structured_reply,
    sanitize_markdown,
)
from tests.conftest import make_structured_text


def test_strips_bold_and_italic_and_converts_bullet() -> None:
    assert sanitize_markdown("**hello** *world*\n- item") == "hello world\n• item"


def test_leading_bullet_at_start_of_text() -> None:
    assert sanitize_markdown("- first") == "• first"


def test_dash_inside_line_is_untouched() -> None:
    assert sanitize_markdown("a - b") == "a - b"


def test_dash_without_space_is_not_a_bullet() -> None:
    assert sanitize_markdown("-5 degrees") == "-5 degrees"


def test_multiple_bold_spans() -> None:
    assert sanitize_markdown("**a** and **b**") == "a and b"


def test_plain_text_unchanged() -> None:
    assert sanitize_markdown("nothing to do here.") == "nothing to do here."


def test_assemble_structured_joins_with_blank_lines() -> None:
    assert assemble_structured(make_structured_text("T", "B", "Q")) == "T\n\nB\n\nQ"


def test_missing_field_renders_empty() -> None:
    assert assemble_structured('{"title": "T", "body": "B"}') == "T\n\nB\n\n"


@pytest.mark.parametrize("raw", ["not json", "{broken", "[1, 2]", '"text"'])
def test_malformed_structured_output_raises(raw: str) -> None:
    with pytest.raises(ReplyFormatError):
        parse_structured_reply(raw)


def test_non_string_field_raises() -> None:
    with pytest.raises(ReplyFormatError):
        parse_structured_reply('{"title": null, "body": "B", "question": "Q"}')
