"""Notification dedup ledger (core domain)."""

from __future__ import annotations

import logging
from typing import Optional

from core.ports import LedgerStorage

LOGGER = logging.getLogger(__name__)


class NotificationLedger:
    """Durable record of domains that already produced a notification.

    A domain is *claimed* from the moment ``try_reserve`` succeeds until the
    reservation is either committed with ``record`` or dropped with
    ``release``. The check and the reservation run without an ``await`` in
    between, which makes them atomic under asyncio scheduling.

    Storage failures never propagate: reads fall back to "not notified" and
    writes are logged and dropped.
    """

    def __init__(self, storage: LedgerStorage) -> None:
        self._storage = storage
        self._in_flight: set[str] = set()

    def is_notified(self, domain: str) -> bool:
        if domain in self._in_flight:
            return True
        try:
            return self._storage.is_notified(domain)
        except Exception:
            LOGGER.warning("Unable to read the notified domains", exc_info=True)
            return False

    def try_reserve(self, domain: str) -> bool:
        """Claim a domain for one notification attempt."""

        if not domain or self.is_notified(domain):
            return False
        self._in_flight.add(domain)
        return True

    def release(self, domain: str) -> None:
        self._in_flight.discard(domain)

    def record(self, domain: str) -> None:
        """Persist a shown notification and drop the in-flight claim."""

        try:
            self._storage.add_notified_domain(domain)
        except Exception:
            LOGGER.warning("Unable to store notified domain %s", domain, exc_info=True)
        finally:
            self._in_flight.discard(domain)

    def clear(self) -> int:
        removed = self._storage.clear_notified_domains()
        LOGGER.info("Cleared %s notified domains", removed)
        return removed

    def is_ignored(self, breakage_id: Optional[str]) -> bool:
        if not breakage_id:
            return False
        try:
            return breakage_id in self._storage.list_ignored_breakages()
        except Exception:
            LOGGER.warning("Unable to read the ignored breakages", exc_info=True)
            return False

    def ignore(self, breakage_id: Optional[str]) -> None:
        if not breakage_id:
            return
        try:
            self._storage.add_ignored_breakage(breakage_id)
        except Exception:
            LOGGER.warning("Unable to store ignored breakage %s", breakage_id, exc_info=True)
