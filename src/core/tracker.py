"""Tab activity tracking (core domain).

The tracker turns raw browser events into evaluation requests for the
controller. Only the foreground tab is ever evaluated; anything that happens
in a background tab is parked until that tab is activated:

- ``pending_tabs``: tabs whose navigation check was deferred
- ``pending_requests``: per tab, request URLs seen while it was in background

Each handler is an isolated unit of work. Errors are logged at the handler
boundary so one bad event never stops the next one from being processed.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from core.config import TrackingConfig
from core.controller import BreakageController
from core.models import REQUEST, TAB, RequestEvent, TabActivation, TabInfo, TabUpdate
from core.ports import EventSource, TabNotFound, TabsPort
from core.subscription import Subscription

LOGGER = logging.getLogger(__name__)


class ActivityTracker:
    def __init__(
        self,
        controller: BreakageController,
        tabs: TabsPort,
        config: TrackingConfig,
    ) -> None:
        self._controller = controller
        self._tabs = tabs
        self._config = config
        self.pending_tabs: Set[int] = set()
        # Dicts keep arrival order and drop duplicate URLs.
        self.pending_requests: Dict[int, Dict[str, None]] = {}
        self._subscription: Optional[Subscription] = None

    @property
    def running(self) -> bool:
        return self._subscription is not None

    def start(self, events: EventSource) -> Subscription:
        """Register the event listeners; calling it again is a no-op."""

        if self._subscription is not None:
            return self._subscription

        subscription = Subscription()
        subscription.add(events.subscribe_tab_updated(self.on_tab_updated))
        subscription.add(events.subscribe_tab_activated(self.on_tab_activated))
        if self._config.track_requests:
            subscription.add(events.subscribe_requests(self.on_request))
        self._subscription = subscription
        LOGGER.info("Activity tracking started")
        return subscription

    def stop(self) -> None:
        if self._subscription is None:
            return
        self._subscription.close()
        self._subscription = None
        # Deferred work belongs to the session that queued it.
        self.pending_tabs.clear()
        self.pending_requests.clear()
        LOGGER.info("Activity tracking stopped")

    def _is_navigation(self, update: TabUpdate) -> bool:
        return update.url_changed or update.status in self._config.trigger_statuses

    async def on_tab_updated(self, update: TabUpdate) -> None:
        try:
            if not self._is_navigation(update):
                return

            tab = update.tab
            # Requests queued for the previous page no longer describe this tab.
            self.pending_requests.pop(tab.id, None)

            if not tab.active:
                self.pending_tabs.add(tab.id)
                return

            self.pending_tabs.discard(tab.id)
            await self._controller.maybe_notify(tab, TAB, tab.url)
        except Exception:
            LOGGER.exception("Error while handling a tab update")

    async def on_request(self, event: RequestEvent) -> None:
        try:
            if event.tab_id < 0:
                # Not issued by a tab (service workers, the browser itself).
                return
            types = self._config.request_types
            if types and event.request_type not in types:
                return

            tab = await self._lookup_tab(event.tab_id)
            if tab is None:
                return

            if not tab.active:
                self.pending_requests.setdefault(tab.id, {})[event.url] = None
                return

            await self._controller.maybe_notify(tab, REQUEST, event.url)
        except Exception:
            LOGGER.exception("Error while handling a request")

    async def on_tab_activated(self, activation: TabActivation) -> None:
        try:
            await self._replay(activation.tab_id)
        except Exception:
            LOGGER.exception("Error while handling a tab activation")

    async def _replay(self, tab_id: int) -> None:
        had_navigation = tab_id in self.pending_tabs
        queued = self.pending_requests.pop(tab_id, None) or {}
        self.pending_tabs.discard(tab_id)
        if not had_navigation and not queued:
            return

        # Re-read the tab: it may have navigated again while in background.
        tab = await self._lookup_tab(tab_id)
        if tab is None:
            return

        if not tab.active:
            # Switched away again before we got here; keep waiting.
            self._defer(tab_id, had_navigation, list(queued))
            return

        if had_navigation and await self._controller.maybe_notify(tab, TAB, tab.url):
            # At most one notification per activation.
            return

        for url in queued:
            if await self._controller.maybe_notify(tab, REQUEST, url):
                return

    def _defer(self, tab_id: int, navigation: bool, urls: List[str]) -> None:
        if navigation:
            self.pending_tabs.add(tab_id)
        if urls:
            # Older URLs stay ahead of anything queued in the meantime.
            pending = dict.fromkeys(urls)
            pending.update(self.pending_requests.get(tab_id, {}))
            self.pending_requests[tab_id] = pending

    async def _lookup_tab(self, tab_id: int) -> Optional[TabInfo]:
        try:
            return await self._tabs.get_tab(tab_id)
        except TabNotFound:
            LOGGER.debug("Tab %s is gone", tab_id)
            return None
