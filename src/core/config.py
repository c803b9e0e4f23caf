"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.models import REQUEST, TAB

MATCH_HOST = "host"
MATCH_BASE_DOMAIN = "base_domain"

NOTIFY_INFORMATIONAL = "informational"
NOTIFY_ACTIONABLE = "actionable"


@dataclass(frozen=True)
class MatchingConfig:
    """Domain comparison policy for each rule kind."""

    tab_mode: str = MATCH_HOST
    request_mode: str = MATCH_BASE_DOMAIN

    def __post_init__(self) -> None:
        for mode in (self.tab_mode, self.request_mode):
            if mode not in (MATCH_HOST, MATCH_BASE_DOMAIN):
                raise ValueError(f"Unsupported matching mode: {mode}")

    def mode_for(self, kind: str) -> str:
        if kind == TAB:
            return self.tab_mode
        if kind == REQUEST:
            return self.request_mode
        raise ValueError(f"Unsupported rule kind: {kind}")


@dataclass(frozen=True)
class TrackingConfig:
    """Which browser events the activity tracker reacts to."""

    trigger_statuses: frozenset[str] = frozenset({"loading"})
    track_requests: bool = True
    # Empty means every request type is accepted.
    request_types: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class NotificationConfig:
    """User-outcome contract for shown notifications."""

    mode: str = NOTIFY_INFORMATIONAL

    def __post_init__(self) -> None:
        if self.mode not in (NOTIFY_INFORMATIONAL, NOTIFY_ACTIONABLE):
            raise ValueError(f"Unsupported notification mode: {self.mode}")
