"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of where they are rendered.
"""

from __future__ import annotations

import html

from core.models import Message, MessagePart


def _parts(message: Message) -> tuple[MessagePart, ...]:
    if isinstance(message, str):
        return (MessagePart(text=message),)
    return tuple(message)


def _format_text(message: Message) -> str:
    return "".join(part.text for part in _parts(message))


def _format_html(message: Message) -> str:
    rendered = []
    for part in _parts(message):
        text = html.escape(part.text)
        rendered.append(f"<strong>{text}</strong>" if part.emphasis else text)
    return "".join(rendered)


def format_notification(message: Message, mode: str) -> str:
    """Return the message formatted for the requested mode."""

    if mode == "text":
        return _format_text(message)
    if mode == "html":
        return _format_html(message)
    raise ValueError(f"Unsupported notification format: {mode}")


def message_to_wire(message: Message) -> object:
    """Convert a message back to its catalog JSON shape."""

    if isinstance(message, str):
        return message
    return [
        {"text": part.text, "modifier": ["strong"]} if part.emphasis else {"text": part.text}
        for part in message
    ]
