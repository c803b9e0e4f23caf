"""Feature-activation lifecycle.

Breakage tracking only runs while the protection feature is active (or
always, in test mode). The activator keeps the rule registry in sync with
the dynamic catalogs and starts or stops the tracker as the feature toggles.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.ports import EventSource, HostBridge
from core.registry import BreakageRegistry
from core.subscription import Subscription
from core.tracker import ActivityTracker

LOGGER = logging.getLogger(__name__)


class BreakageActivator:
    def __init__(
        self,
        bridge: HostBridge,
        events: EventSource,
        registry: BreakageRegistry,
        tracker: ActivityTracker,
    ) -> None:
        self._bridge = bridge
        self._events = events
        self._registry = registry
        self._tracker = tracker
        self._subscription: Optional[Subscription] = None

    async def start(self) -> Subscription:
        """Load rules and begin tracking when appropriate."""

        if self._subscription is not None:
            return self._subscription

        subscription = Subscription()
        self._subscription = subscription
        # Stopping the activator also stops the tracker it started.
        subscription.add(self._tracker.stop)

        await self._registry.rebuild()
        subscription.add(self._bridge.subscribe_dynamic_breakages_updated(self._on_catalog_updated))

        if self._bridge.is_test_mode():
            LOGGER.info("Test mode: tracking regardless of feature state")
            self._tracker.start(self._events)
            return subscription

        if await self._bridge.is_feature_active():
            self._tracker.start(self._events)
        subscription.add(self._bridge.subscribe_activation(self._on_activation_changed))
        return subscription

    def stop(self) -> None:
        if self._subscription is None:
            return
        self._subscription.close()
        self._subscription = None

    async def _on_catalog_updated(self, kind: str) -> None:
        LOGGER.info("Dynamic %s breakages changed, rebuilding", kind)
        await self._registry.rebuild()

    async def _on_activation_changed(self, enabled: bool) -> None:
        if enabled:
            self._tracker.start(self._events)
        else:
            self._tracker.stop()
