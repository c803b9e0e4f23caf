"""Browser bridge over WebExtension native messaging.

The companion extension forwards tab and request events to this process and
answers RPC calls (tab lookups, cookies, notifications). This keeps
browser-specific details out of the core.

Inbound message types:
- ``hello`` / ``featureActivated``: feature state (``featureActive``/``enabled``)
- ``tabUpdated``: ``tabId``, ``changeInfo`` and a ``tab`` snapshot
- ``tabActivated``: ``tabId``
- ``request``: ``tabId``, ``url``, ``requestType``
- ``setDynamicBreakages``: ``kind`` and ``breakages`` (null clears)
- ``clearNotifiedDomains``: test tooling
- ``rpcResult``: ``id``, ``ok``, ``result`` or ``error``
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
import logging
from typing import Any, Awaitable, Callable, Optional

from adapters.etld import BaseDomainResolver
from adapters.native_messaging import MalformedFrame, read_native_message, write_native_message
from adapters.notification_formatting import format_notification, message_to_wire
from adapters.sqlite_storage import SQLiteStorage
from core.models import (
    RULE_KINDS,
    Cookie,
    Message,
    RequestEvent,
    TabActivation,
    TabInfo,
    TabUpdate,
)
from core.ports import BridgeError, TabNotFound, Unsubscribe

LOGGER = logging.getLogger(__name__)

PROTOCOL_VERSION = 1


def _tab_from_wire(raw: Any) -> TabInfo:
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), int):
        raise ValueError(f"Malformed tab: {raw!r}")
    return TabInfo(id=raw["id"], url=str(raw.get("url") or ""), active=bool(raw.get("active")))


def _cookie_from_wire(raw: Any) -> Optional[Cookie]:
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
        return None
    return Cookie(name=raw["name"], value=str(raw.get("value", "")), domain=str(raw.get("domain", "")))


class NativeHostBridge:
    """Implements HostBridge, TabsPort, CookiePort and EventSource."""

    def __init__(
        self,
        storage: SQLiteStorage,
        resolver: BaseDomainResolver,
        test_mode: bool = False,
        call_timeout: float = 10.0,
        reader: Callable[[], Optional[dict[str, Any]]] = read_native_message,
        writer: Callable[[dict[str, Any]], None] = write_native_message,
    ) -> None:
        self._storage = storage
        self._resolver = resolver
        self._test_mode = test_mode
        self._call_timeout = call_timeout
        self._reader = reader
        self._writer = writer
        self._feature_active = False
        self._listeners: dict[str, list[Callable[[Any], Awaitable[None]]]] = defaultdict(list)
        self._pending: dict[int, asyncio.Future] = {}
        self._next_id = 0
        self._tasks: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()

    # -- event plumbing -------------------------------------------------

    def _subscribe(self, name: str, handler: Callable[[Any], Awaitable[None]]) -> Unsubscribe:
        self._listeners[name].append(handler)

        def unsubscribe() -> None:
            try:
                self._listeners[name].remove(handler)
            except ValueError:
                pass

        return unsubscribe

    def _fire(self, name: str, payload: Any) -> None:
        # One task per event: handlers interleave at their await points.
        for handler in list(self._listeners[name]):
            task = asyncio.create_task(handler(payload))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Event handler failed", exc_info=exc)

    def subscribe_tab_updated(self, handler: Callable[[TabUpdate], Awaitable[None]]) -> Unsubscribe:
        return self._subscribe("tab_updated", handler)

    def subscribe_tab_activated(
        self, handler: Callable[[TabActivation], Awaitable[None]]
    ) -> Unsubscribe:
        return self._subscribe("tab_activated", handler)

    def subscribe_requests(self, handler: Callable[[RequestEvent], Awaitable[None]]) -> Unsubscribe:
        return self._subscribe("request", handler)

    def subscribe_activation(self, callback: Callable[[bool], Awaitable[None]]) -> Unsubscribe:
        return self._subscribe("activation", callback)

    def subscribe_dynamic_breakages_updated(
        self, callback: Callable[[str], Awaitable[None]]
    ) -> Unsubscribe:
        return self._subscribe("catalog", callback)

    # -- inbound messages -----------------------------------------------

    async def handle_message(self, msg: dict[str, Any]) -> None:
        mtype = str(msg.get("type") or "")

        if mtype == "rpcResult":
            self._resolve_call(msg)
        elif mtype == "hello":
            self._feature_active = bool(msg.get("featureActive"))
            await self._send({"type": "helloAck", "protocolVersion": PROTOCOL_VERSION})
            # Listeners registered before the hello learn the initial state.
            self._fire("activation", self._feature_active)
        elif mtype == "featureActivated":
            self._feature_active = bool(msg.get("enabled"))
            self._fire("activation", self._feature_active)
        elif mtype == "tabUpdated":
            change = msg.get("changeInfo") if isinstance(msg.get("changeInfo"), dict) else {}
            status = change.get("status")
            self._fire(
                "tab_updated",
                TabUpdate(
                    tab=_tab_from_wire(msg.get("tab")),
                    url_changed="url" in change,
                    status=status if isinstance(status, str) else None,
                ),
            )
        elif mtype == "tabActivated":
            self._fire("tab_activated", TabActivation(tab_id=int(msg["tabId"])))
        elif mtype == "request":
            request_type = msg.get("requestType")
            self._fire(
                "request",
                RequestEvent(
                    tab_id=int(msg.get("tabId", -1)),
                    url=str(msg.get("url") or ""),
                    request_type=request_type if isinstance(request_type, str) else None,
                ),
            )
        elif mtype == "setDynamicBreakages":
            await self._set_dynamic_breakages(msg)
        elif mtype == "clearNotifiedDomains":
            removed = await asyncio.to_thread(self._storage.clear_notified_domains)
            LOGGER.info("Cleared %s notified domains on request", removed)
        else:
            LOGGER.debug("Ignoring native message of type %r", mtype)

    async def _set_dynamic_breakages(self, msg: dict[str, Any]) -> None:
        kind = msg.get("kind")
        if kind not in RULE_KINDS:
            LOGGER.warning("Ignoring dynamic breakages for unknown kind %r", kind)
            return
        breakages = msg.get("breakages")
        if breakages is None:
            await asyncio.to_thread(self._storage.clear_dynamic_breakages, kind)
        elif isinstance(breakages, list):
            await asyncio.to_thread(self._storage.set_dynamic_breakages, kind, breakages)
        else:
            LOGGER.warning("Dynamic %s breakages must be a list", kind)
            return
        self._fire("catalog", kind)

    def _resolve_call(self, msg: dict[str, Any]) -> None:
        future = self._pending.pop(msg.get("id"), None)
        if future is None or future.done():
            return
        if msg.get("ok"):
            future.set_result(msg.get("result"))
            return
        error = msg.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        future.set_exception(BridgeError(message or "rpc failed"))

    async def run(self) -> int:
        """Process inbound frames until the browser closes the pipe."""

        try:
            while True:
                try:
                    msg = await asyncio.to_thread(self._reader)
                except MalformedFrame:
                    # The frame was consumed whole, so the stream is still in sync.
                    LOGGER.warning("Skipping an undecodable native message", exc_info=True)
                    continue
                if msg is None:
                    LOGGER.info("Native messaging stream closed")
                    return 0
                try:
                    await self.handle_message(msg)
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Malformed native message: %r", msg, exc_info=True)
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(BridgeError("native messaging stream closed"))
            self._pending.clear()

    # -- outbound calls -------------------------------------------------

    async def _send(self, msg: dict[str, Any]) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._writer, msg)

    async def _call(self, method: str, **params: Any) -> Any:
        return await self._request(method, params, self._call_timeout)

    async def _request(self, method: str, params: dict[str, Any], timeout: Optional[float]) -> Any:
        """Send one rpc and wait for its result; no timeout when ``timeout`` is None."""

        self._next_id += 1
        call_id = self._next_id
        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = future
        try:
            await self._send({"type": "rpc", "id": call_id, "method": method, "params": params})
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise BridgeError(f"{method} timed out") from None
        finally:
            self._pending.pop(call_id, None)

    def is_test_mode(self) -> bool:
        return self._test_mode

    async def is_feature_active(self) -> bool:
        return self._feature_active

    async def resolve_base_domain(self, url: str) -> str:
        return self._resolver.base_domain(url)

    async def show_notification(self, message: Message) -> Optional[str]:
        # Resolves with the user's answer, which can take arbitrarily long.
        result = await self._request(
            "showMessage",
            {
                "message": message_to_wire(message),
                "html": format_notification(message, "html"),
                "text": format_notification(message, "text"),
            },
            timeout=None,
        )
        return result if isinstance(result, str) else None

    async def allow_url(self, url: str) -> None:
        await self._call("allowURL", url=url)

    async def reload_tab(self, tab_id: int) -> None:
        await self._call("tabs.reload", tabId=tab_id, bypassCache=True)

    async def get_dynamic_breakages(self, kind: str) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._storage.get_dynamic_breakages, kind)

    async def get_tab(self, tab_id: int) -> TabInfo:
        try:
            raw = await self._call("tabs.get", tabId=tab_id)
        except BridgeError as exc:
            raise TabNotFound(tab_id) from exc
        if raw is None:
            raise TabNotFound(tab_id)
        return _tab_from_wire(raw)

    async def get_cookies(self, domain: str) -> list[Cookie]:
        raw = await self._call("cookies.getAll", domain=domain)
        if not isinstance(raw, list):
            return []
        return [cookie for cookie in (_cookie_from_wire(item) for item in raw) if cookie]
