"""Ports (interfaces) used by the core.

Ports define the minimal contracts for the browser bridge, storage, and
catalog adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol

from core.models import Cookie, Message, RequestEvent, TabActivation, TabInfo, TabUpdate

Unsubscribe = Callable[[], None]


class TabNotFound(LookupError):
    """The tab was closed or is otherwise unknown to the browser."""


class BridgeError(RuntimeError):
    """A call into the privileged browser bridge failed."""


class HostBridge(Protocol):
    """Privileged browser operations required by the core."""

    def is_test_mode(self) -> bool:
        ...

    async def is_feature_active(self) -> bool:
        ...

    def subscribe_activation(self, callback: Callable[[bool], Awaitable[None]]) -> Unsubscribe:
        ...

    async def resolve_base_domain(self, url: str) -> str:
        ...

    async def show_notification(self, message: Message) -> Optional[str]:
        ...

    async def allow_url(self, url: str) -> None:
        ...

    async def reload_tab(self, tab_id: int) -> None:
        ...

    async def get_dynamic_breakages(self, kind: str) -> list[dict[str, Any]]:
        ...

    def subscribe_dynamic_breakages_updated(
        self, callback: Callable[[str], Awaitable[None]]
    ) -> Unsubscribe:
        ...


class TabsPort(Protocol):
    async def get_tab(self, tab_id: int) -> TabInfo:
        """Return the current tab state or raise TabNotFound."""
        ...


class CookiePort(Protocol):
    async def get_cookies(self, domain: str) -> list[Cookie]:
        ...


class EventSource(Protocol):
    """Delivers browser events to async handlers."""

    def subscribe_tab_updated(self, handler: Callable[[TabUpdate], Awaitable[None]]) -> Unsubscribe:
        ...

    def subscribe_tab_activated(
        self, handler: Callable[[TabActivation], Awaitable[None]]
    ) -> Unsubscribe:
        ...

    def subscribe_requests(self, handler: Callable[[RequestEvent], Awaitable[None]]) -> Unsubscribe:
        ...


class LedgerStorage(Protocol):
    """Durable storage behind the notification ledger."""

    def is_notified(self, domain: str) -> bool:
        ...

    def add_notified_domain(self, domain: str) -> None:
        ...

    def list_notified_domains(self) -> list[str]:
        ...

    def clear_notified_domains(self) -> int:
        ...

    def list_ignored_breakages(self) -> set[str]:
        ...

    def add_ignored_breakage(self, breakage_id: str) -> None:
        ...


class StaticCatalog(Protocol):
    """Bundled default rules, one document per rule kind."""

    async def load(self, kind: str) -> list[dict[str, Any]]:
        ...
