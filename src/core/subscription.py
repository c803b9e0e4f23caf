"""Listener bookkeeping shared by the tracker and the activator."""

from __future__ import annotations

import logging
from typing import Callable, List

LOGGER = logging.getLogger(__name__)


class Subscription:
    """A set of registered listeners released together.

    ``close()`` runs every unregister callable once, in reverse registration
    order. Closing twice is a no-op.
    """

    def __init__(self) -> None:
        self._unsubscribers: List[Callable[[], None]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def add(self, unsubscribe: Callable[[], None]) -> None:
        if self._closed:
            # Late registrations are released right away.
            unsubscribe()
            return
        self._unsubscribers.append(unsubscribe)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while self._unsubscribers:
            unsubscribe = self._unsubscribers.pop()
            try:
                unsubscribe()
            except Exception:
                LOGGER.exception("Failed to release a listener")

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
