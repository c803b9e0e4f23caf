"""Condition factory: builds and evaluates condition trees.

One factory instance serves exactly one evaluation. Data fetched during
``init()`` (cookie jars, for now) lives on the factory and is dropped with it,
so a later evaluation never reuses a stale snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from core.conditions import CONDITION_TYPES, Condition, InvalidCondition, UnknownConditionType
from core.ports import CookiePort


@dataclass(frozen=True)
class EvaluationContext:
    """What a condition may look at while being evaluated."""

    tab_id: Optional[int] = None
    url: Optional[str] = None
    cookies: Optional[CookiePort] = None


class ConditionFactory:
    def __init__(self, context: Optional[EvaluationContext] = None) -> None:
        self.context = context or EvaluationContext()
        self._data: dict[str, Any] = {}

    @classmethod
    async def run(
        cls,
        context: Optional[EvaluationContext],
        description: Optional[Mapping[str, Any]],
    ) -> bool:
        """Evaluate a condition description; no description means a match.

        Raises ConditionError when the description is malformed.
        """

        if description is None:
            return True

        factory = cls(context)
        condition = factory.create(description)
        await condition.init(factory)
        return condition.check(factory)

    def create(self, description: Mapping[str, Any]) -> Condition:
        """Build a fresh condition tree, failing on unknown types."""

        if not isinstance(description, Mapping):
            raise InvalidCondition(f"Condition must be an object, got {type(description).__name__}")
        type_name = description.get("type")
        condition_class = CONDITION_TYPES.get(type_name) if isinstance(type_name, str) else None
        if condition_class is None:
            raise UnknownConditionType(type_name)
        return condition_class.from_description(self, description)

    def store_data(self, key: str, value: Any) -> None:
        self._data[key] = value

    def retrieve_data(self, key: str) -> Any:
        return self._data.get(key)
