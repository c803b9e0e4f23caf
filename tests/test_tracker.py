from __future__ import annotations

import asyncio

from core.config import MATCH_BASE_DOMAIN, MatchingConfig, TrackingConfig
from core.models import RequestEvent, TabActivation, TabInfo, TabUpdate
from core.tracker import ActivityTracker
from fakes import FakeEvents, FakeTabs, make_controller

BASE = MatchingConfig(tab_mode=MATCH_BASE_DOMAIN)


def _rule(domains, message, condition=None) -> dict:
    rule = {"domains": list(domains), "message": message}
    if condition is not None:
        rule["condition"] = condition
    return rule


def _tracker(tabs: FakeTabs, config: TrackingConfig = TrackingConfig(), **kwargs):
    kwargs.setdefault("matching", BASE)
    controller, bridge, storage = make_controller(**kwargs)
    return ActivityTracker(controller, tabs, config), bridge, storage


def _navigate(tracker: ActivityTracker, tab: TabInfo, *, url_changed=True, status=None) -> None:
    asyncio.run(tracker.on_tab_updated(TabUpdate(tab=tab, url_changed=url_changed, status=status)))


def _activate(tracker: ActivityTracker, tab_id: int) -> None:
    asyncio.run(tracker.on_tab_activated(TabActivation(tab_id=tab_id)))


def _request(tracker: ActivityTracker, tab_id: int, url: str, request_type=None) -> None:
    asyncio.run(tracker.on_request(RequestEvent(tab_id=tab_id, url=url, request_type=request_type)))


def test_foreground_navigation_notifies_immediately() -> None:
    tab = TabInfo(id=1, url="https://www.example.com/", active=True)
    tracker, bridge, _ = _tracker(FakeTabs(tab), tab_rules=[_rule(["example.com"], "ex")])

    _navigate(tracker, tab)

    assert bridge.shown == ["ex"]
    assert tracker.pending_tabs == set()


def test_irrelevant_updates_are_ignored() -> None:
    tab = TabInfo(id=1, url="https://www.example.com/", active=True)
    tracker, bridge, _ = _tracker(FakeTabs(tab), tab_rules=[_rule(["example.com"], "ex")])

    _navigate(tracker, tab, url_changed=False, status="complete")
    assert bridge.shown == []

    # A reload starts with status "loading" and no URL change.
    _navigate(tracker, tab, url_changed=False, status="loading")
    assert bridge.shown == ["ex"]


def test_trigger_statuses_are_configurable() -> None:
    tab = TabInfo(id=1, url="https://www.example.com/", active=True)
    config = TrackingConfig(trigger_statuses=frozenset({"complete"}))
    tracker, bridge, _ = _tracker(FakeTabs(tab), config, tab_rules=[_rule(["example.com"], "ex")])

    _navigate(tracker, tab, url_changed=False, status="loading")
    assert bridge.shown == []
    _navigate(tracker, tab, url_changed=False, status="complete")
    assert bridge.shown == ["ex"]


def test_background_navigation_is_deferred_until_activation() -> None:
    background = TabInfo(id=2, url="https://www.example.com/", active=False)
    tabs = FakeTabs(background)
    tracker, bridge, _ = _tracker(tabs, tab_rules=[_rule(["example.com"], "ex")])

    _navigate(tracker, background)
    assert bridge.shown == []
    assert tracker.pending_tabs == {2}

    tabs.put(TabInfo(id=2, url="https://www.example.com/", active=True))
    _activate(tracker, 2)

    assert bridge.shown == ["ex"]
    assert tracker.pending_tabs == set()

    # Activating again does not replay anything.
    _activate(tracker, 2)
    assert bridge.shown == ["ex"]


def test_replay_uses_the_url_at_activation_time() -> None:
    tabs = FakeTabs()
    tracker, bridge, _ = _tracker(
        tabs,
        tab_rules=[_rule(["stale.com"], "stale"), _rule(["fresh.com"], "fresh")],
    )

    _navigate(tracker, TabInfo(id=3, url="https://stale.com/", active=False))
    tabs.put(TabInfo(id=3, url="https://fresh.com/", active=True))
    _activate(tracker, 3)

    assert bridge.shown == ["fresh"]


def test_activation_of_untracked_tab_does_nothing() -> None:
    tabs = FakeTabs(TabInfo(id=4, url="https://www.example.com/", active=True))
    tracker, bridge, _ = _tracker(tabs, tab_rules=[_rule(["example.com"], "ex")])

    _activate(tracker, 4)

    assert tabs.lookups == []
    assert bridge.shown == []


def test_closed_tab_is_a_silent_no_op() -> None:
    tabs = FakeTabs()
    tracker, bridge, _ = _tracker(tabs, tab_rules=[_rule(["example.com"], "ex")])

    _navigate(tracker, TabInfo(id=5, url="https://www.example.com/", active=False))
    _activate(tracker, 5)

    assert bridge.shown == []
    assert tracker.pending_tabs == set()


def test_tab_switched_away_again_stays_deferred() -> None:
    tabs = FakeTabs(TabInfo(id=6, url="https://www.example.com/", active=False))
    tracker, bridge, _ = _tracker(tabs, tab_rules=[_rule(["example.com"], "ex")])

    _navigate(tracker, tabs.tabs[6])
    _activate(tracker, 6)

    assert bridge.shown == []
    assert tracker.pending_tabs == {6}


def test_foreground_request_notifies_immediately() -> None:
    tab = TabInfo(id=1, url="https://www.example.com/", active=True)
    rules = [
        _rule(
            ["httpbin.org"],
            "URL condition matched",
            condition={"type": "url", "pattern": "https://httpbin\\.org/get"},
        )
    ]
    tracker, bridge, _ = _tracker(FakeTabs(tab), request_rules=rules)

    _request(tracker, 1, "https://httpbin.org/post")
    assert bridge.shown == []
    _request(tracker, 1, "https://httpbin.org/get")
    assert bridge.shown == ["URL condition matched"]


def test_background_requests_replay_in_arrival_order() -> None:
    tabs = FakeTabs(TabInfo(id=2, url="https://www.example.com/", active=False))
    rules = [_rule(["one.com"], "one"), _rule(["two.com"], "two")]
    tracker, bridge, _ = _tracker(tabs, request_rules=rules)

    _request(tracker, 2, "https://cdn.nothing.net/a.js")
    _request(tracker, 2, "https://api.two.com/x")
    _request(tracker, 2, "https://api.one.com/x")
    assert bridge.shown == []
    assert list(tracker.pending_requests[2]) == [
        "https://cdn.nothing.net/a.js",
        "https://api.two.com/x",
        "https://api.one.com/x",
    ]

    tabs.put(TabInfo(id=2, url="https://www.example.com/", active=True))
    _activate(tracker, 2)

    # Stops at the first notification.
    assert bridge.shown == ["two"]
    assert 2 not in tracker.pending_requests


def test_navigation_notification_drops_queued_requests() -> None:
    tabs = FakeTabs()
    tracker, bridge, _ = _tracker(
        tabs,
        tab_rules=[_rule(["example.com"], "page")],
        request_rules=[_rule(["httpbin.org"], "request")],
    )

    _navigate(tracker, TabInfo(id=3, url="https://www.example.com/", active=False))
    tabs.put(TabInfo(id=3, url="https://www.example.com/", active=False))
    _request(tracker, 3, "https://httpbin.org/get")

    tabs.put(TabInfo(id=3, url="https://www.example.com/", active=True))
    _activate(tracker, 3)

    assert bridge.shown == ["page"]
    assert tracker.pending_requests == {}


def test_queued_requests_replay_when_navigation_does_not_notify() -> None:
    tabs = FakeTabs(TabInfo(id=3, url="https://quiet.org/", active=False))
    tracker, bridge, _ = _tracker(
        tabs,
        tab_rules=[_rule(["example.com"], "page")],
        request_rules=[_rule(["httpbin.org"], "request")],
    )

    _navigate(tracker, tabs.tabs[3])
    _request(tracker, 3, "https://httpbin.org/get")
    tabs.put(TabInfo(id=3, url="https://quiet.org/", active=True))
    _activate(tracker, 3)

    assert bridge.shown == ["request"]


def test_navigation_clears_queued_requests() -> None:
    tabs = FakeTabs(TabInfo(id=4, url="https://old.org/", active=False))
    tracker, bridge, _ = _tracker(tabs, request_rules=[_rule(["httpbin.org"], "request")])

    _request(tracker, 4, "https://httpbin.org/get")
    assert 4 in tracker.pending_requests

    _navigate(tracker, TabInfo(id=4, url="https://new.org/", active=False))
    assert 4 not in tracker.pending_requests

    tabs.put(TabInfo(id=4, url="https://new.org/", active=True))
    _activate(tracker, 4)
    assert bridge.shown == []


def test_requests_are_filtered() -> None:
    tab = TabInfo(id=1, url="https://www.example.com/", active=True)
    tabs = FakeTabs(tab)
    config = TrackingConfig(request_types=frozenset({"xmlhttprequest"}))
    tracker, bridge, _ = _tracker(tabs, config, request_rules=[_rule(["httpbin.org"], "request")])

    _request(tracker, 1, "https://httpbin.org/image.png", request_type="image")
    _request(tracker, -1, "https://httpbin.org/get", request_type="xmlhttprequest")
    assert bridge.shown == []
    assert tabs.lookups == []

    _request(tracker, 1, "https://httpbin.org/get", request_type="xmlhttprequest")
    assert bridge.shown == ["request"]


def test_handler_errors_do_not_escape() -> None:
    class ExplodingTabs(FakeTabs):
        async def get_tab(self, tab_id):
            raise RuntimeError("bridge crashed")

    tracker, bridge, _ = _tracker(ExplodingTabs(), request_rules=[_rule(["httpbin.org"], "r")])

    _request(tracker, 1, "https://httpbin.org/get")

    assert bridge.shown == []


def test_start_and_stop_manage_listeners() -> None:
    events = FakeEvents()
    tracker, _, _ = _tracker(FakeTabs())

    subscription = tracker.start(events)
    assert tracker.start(events) is subscription
    assert {name: len(handlers) for name, handlers in events.handlers.items()} == {
        "tab_updated": 1,
        "tab_activated": 1,
        "request": 1,
    }

    tracker.pending_tabs.add(9)
    tracker.stop()
    tracker.stop()
    assert all(not handlers for handlers in events.handlers.values())
    assert tracker.pending_tabs == set()
    assert tracker.running is False

    tracker.start(events)
    assert len(events.handlers["tab_updated"]) == 1


def test_request_listener_is_optional() -> None:
    events = FakeEvents()
    tracker, _, _ = _tracker(FakeTabs(), TrackingConfig(track_requests=False))

    tracker.start(events)

    assert events.handlers["request"] == []
