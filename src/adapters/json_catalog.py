"""Bundled breakage catalogs stored as JSON files."""

from __future__ import annotations

import asyncio
import json
from typing import Any


class JsonFileCatalog:
    """Static catalog adapter: one JSON array per rule kind."""

    def __init__(self, paths: dict[str, str]) -> None:
        self._paths = paths

    async def load(self, kind: str) -> list[dict[str, Any]]:
        path = self._paths.get(kind)
        if not path:
            return []
        data = await asyncio.to_thread(self._read, path)
        return data if isinstance(data, list) else []

    @staticmethod
    def _read(path: str) -> Any:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
