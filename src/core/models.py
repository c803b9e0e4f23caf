"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any browser-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union

# Rule namespaces, keyed by what triggers the evaluation.
TAB = "tab"
REQUEST = "request"
RULE_KINDS = (TAB, REQUEST)

# Answers a notification can produce in the actionable mode.
OUTCOME_CLOSED = "closed"
OUTCOME_CLICKED = "clicked"
OUTCOME_NOT_ANYMORE = "not-anymore"


@dataclass(frozen=True)
class MessagePart:
    """One fragment of a rich-text notification message."""

    text: str
    emphasis: bool = False


Message = Union[str, Tuple[MessagePart, ...]]


@dataclass(frozen=True)
class BreakageRule:
    """A known breakage: domains, an optional condition and a message."""

    id: Optional[str]
    domains: frozenset[str]
    message: Message
    condition: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class TabInfo:
    """Snapshot of a browser tab."""

    id: int
    url: str
    active: bool


@dataclass(frozen=True)
class TabUpdate:
    """A tab changed URL or load status."""

    tab: TabInfo
    url_changed: bool
    status: Optional[str] = None


@dataclass(frozen=True)
class TabActivation:
    tab_id: int


@dataclass(frozen=True)
class RequestEvent:
    """A network request issued by a page."""

    tab_id: int
    url: str
    request_type: Optional[str] = None


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str
    domain: str = ""
