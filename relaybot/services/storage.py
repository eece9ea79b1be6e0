"""SQLite repository backing the config, user, message and lease stores."""

from __future__ import annotations

import asyncio
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional

from relaybot.models import LoggedMessage, UserInfo, UserRecord, VerificationState
from relaybot.services.storage_base import ConfigStore, LeaseStore, MessageLog, UserStore

_USER_COLUMNS = {
    "state": "user_state",
    "is_blocked": "is_blocked",
    "block_count": "block_count",
    "topic_id": "topic_id",
    "first_message_sent": "first_message_sent",
}


class Repository(ConfigStore, UserStore, LeaseStore):
    """Repository layer encapsulating SQLite operations."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    async def init(self) -> None:
        """Initialize database schema."""

        await asyncio.to_thread(self._create_schema)

    # config store
    async def list_all(self) -> dict[str, str]:
        return await asyncio.to_thread(self._list_config_sync)

    async def put(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._put_config_sync, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_config_sync, key)

    # user store
    async def get_or_create(self, user_id: str) -> UserRecord:
        return await asyncio.to_thread(self._get_or_create_sync, str(user_id))

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return await asyncio.to_thread(self._get_user_sync, str(user_id))

    async def update(self, user_id: str, **fields: Any) -> None:
        await asyncio.to_thread(self._update_user_sync, str(user_id), fields)

    async def find_by_topic(self, topic_id: str) -> Optional[str]:
        return await asyncio.to_thread(self._find_by_topic_sync, str(topic_id))

    # message log
    async def log_message(self, user_id: str, message_id: int, text: str, timestamp: int) -> None:
        await asyncio.to_thread(
            self._put_message_sync, str(user_id), int(message_id), text, int(timestamp)
        )

    async def get_logged_message(self, user_id: str, message_id: int) -> Optional[LoggedMessage]:
        return await asyncio.to_thread(self._get_message_sync, str(user_id), int(message_id))

    # leases
    async def acquire_lease(self, name: str, owner: str, ttl_seconds: float) -> bool:
        return await asyncio.to_thread(self._acquire_lease_sync, name, owner, ttl_seconds)

    async def release_lease(self, name: str, owner: str) -> None:
        await asyncio.to_thread(self._release_lease_sync, name, owner)

    # internal helpers
    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _create_schema(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    user_state TEXT NOT NULL DEFAULT 'new',
                    is_blocked INTEGER NOT NULL DEFAULT 0,
                    block_count INTEGER NOT NULL DEFAULT 0,
                    first_message_sent INTEGER NOT NULL DEFAULT 0,
                    topic_id TEXT UNIQUE,
                    user_info_json TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    user_id TEXT NOT NULL,
                    message_id INTEGER NOT NULL,
                    text TEXT,
                    date INTEGER,
                    PRIMARY KEY (user_id, message_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS leases (
                    name TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    expires_at REAL NOT NULL
                )
                """
            )
            conn.commit()

    def _list_config_sync(self) -> dict[str, str]:
        with self._connection() as conn:
            rows = conn.execute("SELECT key, value FROM config").fetchall()
        return {row["key"]: row["value"] if row["value"] is not None else "" for row in rows}

    def _put_config_sync(self, key: str, value: str) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO config (key, value) VALUES (?, ?)",
                (key, value),
            )
            conn.commit()

    def _delete_config_sync(self, key: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM config WHERE key = ?", (key,))
            conn.commit()

    def _row_to_record(self, row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            user_id=row["user_id"],
            state=VerificationState.parse(row["user_state"]),
            is_blocked=bool(row["is_blocked"] or 0),
            block_count=max(int(row["block_count"] or 0), 0),
            topic_id=row["topic_id"] or None,
            first_message_sent=bool(row["first_message_sent"] or 0),
            info=UserInfo.from_json(row["user_info_json"]),
        )

    def _get_user_sync(self, user_id: str) -> Optional[UserRecord]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def _get_or_create_sync(self, user_id: str) -> UserRecord:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (user_id, user_state) VALUES (?, ?)",
                (user_id, VerificationState.NEW.value),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        return self._row_to_record(row)

    def _update_user_sync(self, user_id: str, fields: dict[str, Any]) -> None:
        assignments: list[str] = []
        values: list[Any] = []
        with self._connection() as conn:
            for name, value in fields.items():
                if name == "info":
                    continue
                column = _USER_COLUMNS.get(name)
                if column is None:
                    raise ValueError(f"Unknown user field: {name}")
                if isinstance(value, VerificationState):
                    value = value.value
                elif isinstance(value, bool):
                    value = int(value)
                assignments.append(f"{column} = ?")
                values.append(value)
            info_changes = fields.get("info")
            if info_changes:
                row = conn.execute(
                    "SELECT user_info_json FROM users WHERE user_id = ?", (user_id,)
                ).fetchone()
                current = UserInfo.from_json(row["user_info_json"] if row else None)
                assignments.append("user_info_json = ?")
                values.append(current.merged(info_changes).to_json())
            if not assignments:
                return
            values.append(user_id)
            conn.execute(
                f"UPDATE users SET {', '.join(assignments)} WHERE user_id = ?",
                values,
            )
            conn.commit()

    def _find_by_topic_sync(self, topic_id: str) -> Optional[str]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT user_id FROM users WHERE topic_id = ?", (topic_id,)
            ).fetchone()
        return row["user_id"] if row else None

    def _put_message_sync(self, user_id: str, message_id: int, text: str, timestamp: int) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO messages (user_id, message_id, text, date) VALUES (?, ?, ?, ?)",
                (user_id, message_id, text, timestamp),
            )
            conn.commit()

    def _get_message_sync(self, user_id: str, message_id: int) -> Optional[LoggedMessage]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT text, date FROM messages WHERE user_id = ? AND message_id = ?",
                (user_id, message_id),
            ).fetchone()
        if not row:
            return None
        return LoggedMessage(text=row["text"] or "", timestamp=int(row["date"] or 0))

    def _acquire_lease_sync(self, name: str, owner: str, ttl_seconds: float) -> bool:
        now = time.time()
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                "DELETE FROM leases WHERE name = ? AND expires_at <= ?",
                (name, now),
            )
            cur = conn.execute(
                "INSERT OR IGNORE INTO leases (name, owner, expires_at) VALUES (?, ?, ?)",
                (name, owner, now + ttl_seconds),
            )
            conn.commit()
        return cur.rowcount == 1

    def _release_lease_sync(self, name: str, owner: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM leases WHERE name = ? AND owner = ?", (name, owner))
            conn.commit()


class RepositoryMessageLog(MessageLog):
    """Message log view over :class:`Repository`.

    ``Repository.put`` is taken by the config store, so the message log
    contract is exposed through this adapter.
    """

    def __init__(self, repository: Repository) -> None:
        self._repository = repository

    async def put(self, user_id: str, message_id: int, text: str, timestamp: int) -> None:
        await self._repository.log_message(user_id, message_id, text, timestamp)

    async def get(self, user_id: str, message_id: int) -> Optional[LoggedMessage]:
        return await self._repository.get_logged_message(user_id, message_id)


__all__ = ["Repository", "RepositoryMessageLog"]
