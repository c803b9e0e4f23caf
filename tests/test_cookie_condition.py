from __future__ import annotations

import asyncio

from core.factory import ConditionFactory, EvaluationContext
from core.models import Cookie
from fakes import FakeBridge

DOMAIN = "www.example.com"


def _check(bridge: FakeBridge, **desc) -> bool:
    description = {"type": "cookie", "domain": DOMAIN, **desc}
    context = EvaluationContext(tab_id=1, url="https://www.example.com/", cookies=bridge)
    return asyncio.run(ConditionFactory.run(context, description))


def _bridge_with(name: str, value: str) -> FakeBridge:
    bridge = FakeBridge()
    bridge.cookies[DOMAIN] = [Cookie(name=name, value=value, domain=DOMAIN)]
    return bridge


def test_absent_cookie_is_false() -> None:
    assert _check(FakeBridge(), name="ipp_test") is False


def test_present_cookie_without_constraints_is_true() -> None:
    assert _check(_bridge_with("ipp_test", "hello"), name="ipp_test") is True


def test_exact_value() -> None:
    assert _check(_bridge_with("ipp_value", "wrong"), name="ipp_value", value="abc123") is False
    assert _check(_bridge_with("ipp_value", "abc123"), name="ipp_value", value="abc123") is True


def test_value_contain() -> None:
    bridge = _bridge_with("ipp_contains", "abc")
    assert _check(bridge, name="ipp_contains", value_contain="XYZ") is False
    bridge = _bridge_with("ipp_contains", "123XYZ456")
    assert _check(bridge, name="ipp_contains", value_contain="XYZ") is True


def test_value_and_value_contain_must_both_hold() -> None:
    bridge = _bridge_with("c", "123XYZ456")
    assert _check(bridge, name="c", value="123XYZ456", value_contain="XYZ") is True
    assert _check(bridge, name="c", value="other", value_contain="XYZ") is False
    assert _check(bridge, name="c", value="123XYZ456", value_contain="nope") is False


def test_missing_domain_or_name_is_false_without_lookup() -> None:
    bridge = _bridge_with("ipp_test", "hello")
    context = EvaluationContext(cookies=bridge)
    assert asyncio.run(ConditionFactory.run(context, {"type": "cookie", "name": "ipp_test"})) is False
    assert bridge.cookie_lookups == []
    assert _check(bridge) is False


def test_lookup_failure_fails_closed() -> None:
    bridge = _bridge_with("ipp_test", "hello")
    bridge.cookie_error = RuntimeError("cookie jar unavailable")
    assert _check(bridge, name="ipp_test") is False


def test_shared_domain_is_fetched_once_per_evaluation() -> None:
    bridge = _bridge_with("a", "1")
    bridge.cookies[DOMAIN].append(Cookie(name="b", value="2", domain=DOMAIN))
    description = {
        "type": "and",
        "conditions": [
            {"type": "cookie", "domain": DOMAIN, "name": "a"},
            {"type": "cookie", "domain": DOMAIN, "name": "b", "value": "2"},
        ],
    }
    assert asyncio.run(ConditionFactory.run(EvaluationContext(cookies=bridge), description)) is True
    assert bridge.cookie_lookups == [DOMAIN]


def test_evaluations_do_not_share_cookie_snapshots() -> None:
    bridge = FakeBridge()
    assert _check(bridge, name="ipp_test") is False

    bridge.cookies[DOMAIN] = [Cookie(name="ipp_test", value="hello")]
    assert _check(bridge, name="ipp_test") is True
    assert bridge.cookie_lookups == [DOMAIN, DOMAIN]
