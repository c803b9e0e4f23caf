"""Condition tree nodes (core domain).

A condition gates whether a matched breakage rule actually fires. Evaluation
runs in two phases: ``init()`` gathers whatever data the node needs (possibly
awaiting the browser), then ``check()`` decides synchronously from the data
cached on the owning factory.

Descriptions use the same JSON shape as the shipped catalogs::

    {"type": "and", "conditions": [
        {"type": "cookie", "domain": "www.example.com", "name": "session"},
        {"type": "not", "condition": {"type": "url", "pattern": "/embed/"}}
    ]}
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import TYPE_CHECKING, Any, ClassVar, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from core.factory import ConditionFactory

LOGGER = logging.getLogger(__name__)

COOKIE_CACHE_PREFIX = "cookies-"


class ConditionError(ValueError):
    """A condition description cannot be turned into a condition tree."""


class UnknownConditionType(ConditionError):
    def __init__(self, type_name: Any) -> None:
        super().__init__(f"Unknown condition type: {type_name!r}")
        self.type_name = type_name


class InvalidCondition(ConditionError):
    pass


class Condition:
    """Base class for condition nodes."""

    type_name: ClassVar[str] = ""

    @classmethod
    def from_description(cls, factory: "ConditionFactory", desc: Mapping[str, Any]) -> "Condition":
        raise NotImplementedError

    async def init(self, factory: "ConditionFactory") -> None:
        return None

    def check(self, factory: "ConditionFactory") -> bool:
        raise NotImplementedError


@dataclass(frozen=True, eq=False)
class ConstantCondition(Condition):
    """Fixed result, used by tests and for switching rules on or off."""

    type_name = "test"

    result: bool = False

    @classmethod
    def from_description(cls, factory, desc):
        return cls(result=bool(desc.get("ret", desc.get("result", False))))

    def check(self, factory) -> bool:
        return self.result


@dataclass(frozen=True, eq=False)
class AndCondition(Condition):
    type_name = "and"

    children: Tuple[Condition, ...] = ()

    @classmethod
    def from_description(cls, factory, desc):
        return cls(children=_create_children(factory, desc))

    async def init(self, factory) -> None:
        # Sequential so that nodes sharing a cache key fetch only once.
        for child in self.children:
            await child.init(factory)

    def check(self, factory) -> bool:
        return all(child.check(factory) for child in self.children)


@dataclass(frozen=True, eq=False)
class OrCondition(Condition):
    type_name = "or"

    children: Tuple[Condition, ...] = ()

    @classmethod
    def from_description(cls, factory, desc):
        return cls(children=_create_children(factory, desc))

    async def init(self, factory) -> None:
        for child in self.children:
            await child.init(factory)

    def check(self, factory) -> bool:
        return any(child.check(factory) for child in self.children)


@dataclass(frozen=True, eq=False)
class NotCondition(Condition):
    """Negation. A missing child evaluates to true."""

    type_name = "not"

    child: Optional[Condition] = None

    @classmethod
    def from_description(cls, factory, desc):
        inner = desc.get("condition")
        if inner is None:
            return cls()
        return cls(child=factory.create(inner))

    async def init(self, factory) -> None:
        if self.child is not None:
            await self.child.init(factory)

    def check(self, factory) -> bool:
        if self.child is None:
            return True
        return not self.child.check(factory)


@dataclass(frozen=True, eq=False)
class CookieCondition(Condition):
    """True when a cookie named ``name`` exists for ``domain``.

    ``value`` requires an exact value and ``value_contain`` a substring; when
    both are set both must hold.
    """

    type_name = "cookie"

    domain: Optional[str] = None
    name: Optional[str] = None
    value: Optional[str] = None
    value_contain: Optional[str] = None

    @classmethod
    def from_description(cls, factory, desc):
        return cls(
            domain=_optional_str(desc.get("domain")),
            name=_optional_str(desc.get("name")),
            value=_optional_str(desc.get("value")),
            value_contain=_optional_str(desc.get("value_contain")),
        )

    @property
    def cache_key(self) -> str:
        return f"{COOKIE_CACHE_PREFIX}{self.domain}"

    async def init(self, factory) -> None:
        if not self.domain:
            return
        if isinstance(factory.retrieve_data(self.cache_key), list):
            return

        cookies = []
        port = factory.context.cookies
        if port is not None:
            try:
                cookies = list(await port.get_cookies(self.domain))
            except Exception:
                # Fail closed: an unreadable jar behaves like an empty one.
                LOGGER.warning("Cookie lookup failed for %s", self.domain, exc_info=True)
                cookies = []
        factory.store_data(self.cache_key, cookies)

    def check(self, factory) -> bool:
        if not self.domain or not self.name:
            return False

        cookies = factory.retrieve_data(self.cache_key) or []
        cookie = next((c for c in cookies if c is not None and c.name == self.name), None)
        if cookie is None:
            return False
        if self.value is not None and cookie.value != self.value:
            return False
        if self.value_contain is not None and (
            not isinstance(cookie.value, str) or self.value_contain not in cookie.value
        ):
            return False
        return True


@dataclass(frozen=True, eq=False)
class UrlCondition(Condition):
    """Regex test against the URL that triggered the evaluation."""

    type_name = "url"

    pattern: re.Pattern = re.compile("")

    @classmethod
    def from_description(cls, factory, desc):
        raw = desc.get("pattern")
        if not isinstance(raw, str):
            raise InvalidCondition("url condition requires a string pattern")
        try:
            return cls(pattern=re.compile(raw))
        except re.error as exc:
            raise InvalidCondition(f"Invalid url pattern {raw!r}: {exc}") from exc

    def check(self, factory) -> bool:
        url = factory.context.url
        if not url:
            return False
        return self.pattern.search(url) is not None


CONDITION_TYPES: dict[str, type[Condition]] = {
    condition_class.type_name: condition_class
    for condition_class in (
        ConstantCondition,
        AndCondition,
        OrCondition,
        NotCondition,
        CookieCondition,
        UrlCondition,
    )
}


def _create_children(factory: "ConditionFactory", desc: Mapping[str, Any]) -> Tuple[Condition, ...]:
    raw_children = desc.get("conditions") or []
    if not isinstance(raw_children, (list, tuple)):
        raise InvalidCondition(f"{desc.get('type')} condition expects a list of conditions")
    return tuple(factory.create(child) for child in raw_children)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None
