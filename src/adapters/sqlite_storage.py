"""SQLite storage adapter.

Implements the core LedgerStorage port and keeps the dynamic breakage
catalogs using a simple SQLite database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

LOGGER = logging.getLogger(__name__)

DYNAMIC_BREAKAGES_KEY = "dynamic_breakages.{kind}"


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the LedgerStorage contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - notified_domains: domains that already produced a notification
        - ignored_breakages: breakage ids the user asked not to see again
        - prefs: JSON values such as the dynamic breakage catalogs
        """

        with self._connect() as conn:
            # notified_domains is the dedup ledger. Rows are only removed by
            # an explicit clear.
            # Fields:
            # - domain: host or base domain used for matching (PRIMARY KEY)
            # - notified_at: timestamp of the notification
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notified_domains (
                    domain TEXT PRIMARY KEY,
                    notified_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ignored_breakages (
                    breakage_id TEXT PRIMARY KEY,
                    ignored_at TIMESTAMP NOT NULL
                )
                """
            )
            # prefs mirrors a preference branch: one JSON document per key.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS prefs (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def is_notified(self, domain: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM notified_domains WHERE domain = ?",
                (domain,),
            ).fetchone()
        return row is not None

    def add_notified_domain(self, domain: str) -> None:
        """Insert a domain if it is not recorded yet."""

        if not domain:
            return
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO notified_domains (domain, notified_at) VALUES (?, ?)",
                (domain, now.isoformat()),
            )

    def list_notified_domains(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT domain FROM notified_domains ORDER BY notified_at, domain"
            ).fetchall()
        return [row["domain"] for row in rows]

    def clear_notified_domains(self) -> int:
        """Delete every notified domain and return the number removed."""

        with self._connect() as conn:
            cur = conn.execute("DELETE FROM notified_domains")
            return cur.rowcount

    def list_ignored_breakages(self) -> set[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT breakage_id FROM ignored_breakages").fetchall()
        return {row["breakage_id"] for row in rows}

    def add_ignored_breakage(self, breakage_id: str) -> None:
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO ignored_breakages (breakage_id, ignored_at) VALUES (?, ?)",
                (breakage_id, now.isoformat()),
            )

    def get_dynamic_breakages(self, kind: str) -> list[dict[str, Any]]:
        """Return the dynamic catalog of a kind; bad data reads as empty."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM prefs WHERE key = ?",
                (DYNAMIC_BREAKAGES_KEY.format(kind=kind),),
            ).fetchone()
        if row is None:
            return []
        try:
            value = json.loads(row["value"])
        except ValueError:
            LOGGER.warning("Stored %s breakages are not valid JSON", kind)
            return []
        return value if isinstance(value, list) else []

    def set_dynamic_breakages(self, kind: str, breakages: list[dict[str, Any]]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO prefs (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (DYNAMIC_BREAKAGES_KEY.format(kind=kind), json.dumps(breakages)),
            )

    def clear_dynamic_breakages(self, kind: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM prefs WHERE key = ?",
                (DYNAMIC_BREAKAGES_KEY.format(kind=kind),),
            )
