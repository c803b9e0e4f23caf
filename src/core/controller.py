"""Breakage matching controller.

This module is integration-agnostic. It only relies on ports for the browser
bridge and storage, enabling other frontends or adapters without changes here.

For one candidate URL the controller enforces a strict order:
1) Resolve the comparison domain (exact host or base domain, per rule kind)
2) Skip domains already notified or currently being notified
3) Find the first rule listing the domain
4) Evaluate the rule condition
5) Show the notification, then record the domain
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

from core.conditions import ConditionError
from core.config import (
    MATCH_HOST,
    NOTIFY_ACTIONABLE,
    MatchingConfig,
    NotificationConfig,
)
from core.factory import ConditionFactory, EvaluationContext
from core.ledger import NotificationLedger
from core.models import (
    OUTCOME_CLICKED,
    OUTCOME_CLOSED,
    OUTCOME_NOT_ANYMORE,
    BreakageRule,
    TabInfo,
)
from core.ports import BridgeError, CookiePort, HostBridge
from core.registry import BreakageRegistry, find_rule

LOGGER = logging.getLogger(__name__)


def host_from_url(url: str) -> str:
    """Return the lowercase hostname of a URL, or an empty string."""

    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


class BreakageController:
    """Decides whether a URL deserves a breakage notification and shows it."""

    def __init__(
        self,
        registry: BreakageRegistry,
        ledger: NotificationLedger,
        bridge: HostBridge,
        cookies: Optional[CookiePort],
        matching: MatchingConfig,
        notifications: NotificationConfig,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._bridge = bridge
        self._cookies = cookies
        self._matching = matching
        self._notifications = notifications

    async def resolve_domain(self, kind: str, url: str) -> str:
        if self._matching.mode_for(kind) == MATCH_HOST:
            return host_from_url(url)
        try:
            return await self._bridge.resolve_base_domain(url) or ""
        except Exception:
            LOGGER.warning("Unable to resolve the base domain of %s", url, exc_info=True)
            return ""

    async def maybe_notify(self, tab: TabInfo, kind: str, url: str) -> bool:
        """Return True when a notification was shown for ``url``."""

        # Capture the current tuple; a concurrent rebuild swaps in a new one.
        rules = self._registry.rules_for(kind)

        domain = await self.resolve_domain(kind, url)
        if not domain:
            return False

        # No await between the check and the claim: two racing events for the
        # same domain cannot both get past this point.
        if not self._ledger.try_reserve(domain):
            return False

        try:
            rule = self._find_active_rule(rules, domain)
            if rule is None:
                return False

            context = EvaluationContext(tab_id=tab.id, url=url, cookies=self._cookies)
            try:
                matched = await ConditionFactory.run(context, rule.condition)
            except ConditionError:
                LOGGER.error("Invalid condition in breakage %s", rule.id or domain, exc_info=True)
                return False
            if not matched:
                return False

            try:
                outcome = await self._bridge.show_notification(rule.message)
            except BridgeError:
                # The notification may already be on screen.
                LOGGER.warning("No answer to the notification for %s", domain, exc_info=True)
                outcome = None
            finally:
                # Dedup suppresses re-notification regardless of what the user did.
                self._ledger.record(domain)
            LOGGER.info("Breakage notification shown for %s (%s)", domain, rule.id or kind)
            await self._handle_outcome(outcome, rule, tab, url)
            return True
        finally:
            self._ledger.release(domain)

    def _find_active_rule(self, rules, domain: str) -> Optional[BreakageRule]:
        rule = find_rule(rules, domain)
        if rule is not None and self._ledger.is_ignored(rule.id):
            LOGGER.debug("Breakage %s is ignored by the user", rule.id)
            return None
        return rule

    async def _handle_outcome(
        self,
        outcome: Optional[str],
        rule: BreakageRule,
        tab: TabInfo,
        url: str,
    ) -> None:
        if self._notifications.mode != NOTIFY_ACTIONABLE:
            return

        if outcome in (None, OUTCOME_CLOSED):
            return
        if outcome == OUTCOME_NOT_ANYMORE:
            self._ledger.ignore(rule.id)
            return
        if outcome == OUTCOME_CLICKED:
            await self._bridge.allow_url(url)
            await self._bridge.reload_tab(tab.id)
            return
        LOGGER.warning("Unexpected notification result: %r", outcome)
