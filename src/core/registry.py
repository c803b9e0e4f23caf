"""Breakage rule catalogs and lookup (core domain)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.models import RULE_KINDS, BreakageRule, Message, MessagePart
from core.ports import HostBridge, StaticCatalog

LOGGER = logging.getLogger(__name__)


def _build_message(raw: Any) -> Message:
    """Normalize a message: plain text or a list of ``{text, modifier}`` parts."""

    if isinstance(raw, (list, tuple)):
        parts: List[MessagePart] = []
        for part in raw:
            if not isinstance(part, dict):
                continue
            modifiers = part.get("modifier")
            emphasis = bool(part.get("emphasis")) or (
                isinstance(modifiers, list) and "strong" in modifiers
            )
            text = part.get("text")
            parts.append(MessagePart(text="" if text is None else str(text), emphasis=emphasis))
        return tuple(parts)
    return "" if raw is None else str(raw)


def build_rules(rules_config: Iterable[Any]) -> List[BreakageRule]:
    """Normalize raw catalog entries into rules.

    Entries without a list of domains cannot match anything and are skipped.
    Conditions are kept as descriptions; they are parsed per evaluation so a
    broken condition only fails the rule that carries it.
    """

    built: List[BreakageRule] = []
    for entry in rules_config:
        if not isinstance(entry, dict):
            LOGGER.warning("Skipping breakage entry that is not an object: %r", entry)
            continue
        domains = entry.get("domains")
        if not isinstance(domains, list):
            LOGGER.warning("Skipping breakage %s without a domains list", entry.get("id"))
            continue
        rule_id = entry.get("id")
        built.append(
            BreakageRule(
                id=str(rule_id) if rule_id is not None else None,
                domains=frozenset(str(d) for d in domains if d),
                message=_build_message(entry.get("message")),
                condition=entry.get("condition"),
            )
        )
    return built


def find_rule(rules: Iterable[BreakageRule], domain: str) -> Optional[BreakageRule]:
    """Return the first rule listing ``domain``; catalog order breaks ties."""

    for rule in rules:
        if domain in rule.domains:
            return rule
    return None


class BreakageRegistry:
    """Merges the bundled catalog with the dynamically configured one.

    The effective list of each kind is the static rules followed by the
    dynamic rules. It is rebuilt as a whole and exposed as a tuple, so callers
    holding a previous tuple keep a consistent view.
    """

    def __init__(self, static_catalog: StaticCatalog, bridge: HostBridge) -> None:
        self._static_catalog = static_catalog
        self._bridge = bridge
        self._static: Dict[str, List[BreakageRule]] = {}
        self._effective: Dict[str, Tuple[BreakageRule, ...]] = {kind: () for kind in RULE_KINDS}
        self._rebuild_lock = asyncio.Lock()

    def rules_for(self, kind: str) -> Tuple[BreakageRule, ...]:
        return self._effective[kind]

    async def rebuild(self) -> None:
        """Reload the dynamic catalogs and recombine. Never raises.

        Rebuilds run one at a time so a slow earlier rebuild cannot overwrite
        the result of a later one.
        """

        async with self._rebuild_lock:
            for kind in RULE_KINDS:
                static_rules = await self._load_static(kind)
                dynamic_rules = await self._load_dynamic(kind)
                self._effective[kind] = tuple(static_rules + dynamic_rules)
                LOGGER.info(
                    "%s %s rules are loaded (%s static, %s dynamic)",
                    len(self._effective[kind]),
                    kind,
                    len(static_rules),
                    len(dynamic_rules),
                )

    async def _load_static(self, kind: str) -> List[BreakageRule]:
        # The bundled catalog never changes at runtime; one attempt per kind.
        if kind not in self._static:
            try:
                raw = await self._static_catalog.load(kind)
                self._static[kind] = build_rules(raw if isinstance(raw, list) else [])
            except Exception:
                LOGGER.warning("Unable to load the bundled %s breakages", kind, exc_info=True)
                self._static[kind] = []
        return self._static[kind]

    async def _load_dynamic(self, kind: str) -> List[BreakageRule]:
        try:
            raw = await self._bridge.get_dynamic_breakages(kind)
        except Exception:
            LOGGER.warning("Unable to retrieve the dynamic %s breakages", kind, exc_info=True)
            return []
        return build_rules(raw if isinstance(raw, list) else [])
