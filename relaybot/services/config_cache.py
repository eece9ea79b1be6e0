"""Read-through cache over the runtime configuration store."""

from __future__ import annotations

import json
import re
import sqlite3
import time
from typing import Any, Callable, Mapping, Optional

from relaybot.models import AdminInputState
from relaybot.services.storage_base import ConfigStore
from logger import get_logger

logger = get_logger(__name__)

DEFAULTS: dict[str, str] = {
    "welcome_msg": "Welcome, {name}! Please complete verification before chatting.",
    "enable_verify": "true",
    "enable_qa_verify": "true",
    "captcha_mode": "turnstile",
    "verif_q": "1+1=?\nHint: the answer is in the bot description.",
    "verif_a": "3",
    "block_threshold": "5",
    "enable_admin_receipt": "true",
    "enable_image_forwarding": "true",
    "enable_link_forwarding": "true",
    "enable_text_forwarding": "true",
    "enable_channel_forwarding": "true",
    "enable_forward_forwarding": "true",
    "enable_audio_forwarding": "true",
    "enable_sticker_forwarding": "true",
    "require_text_first_message": "false",
    "backup_group_id": "",
    "unread_topic_id": "",
    "blocked_topic_id": "",
    "busy_mode": "false",
    "busy_msg": "We are currently offline. Your message has been received and an admin will reply later.",
    "block_keywords": "[]",
    "keyword_responses": "[]",
    "authorized_admins": "[]",
}

ADMIN_STATE_PREFIX = "admin_state:"

_ENV_SUFFIXES = {"_MSG": "_MESSAGE", "_Q": "_QUESTION", "_A": "_ANSWER"}
_ENV_SUFFIX_RE = re.compile(r"(_MSG|_Q|_A)$")


def env_key_for(key: str) -> str:
    """Return the environment variable that overrides ``key``."""

    return _ENV_SUFFIX_RE.sub(lambda m: _ENV_SUFFIXES[m.group(1)], key.upper(), count=1)


class ConfigCache:
    """Whole-table snapshot of the config store with a TTL.

    A lookup that misses the live snapshot reloads every entry at once;
    writes go to the store and only mark the snapshot stale.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        ttl_seconds: float = 60.0,
        env: Optional[Mapping[str, str]] = None,
        defaults: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._env: Mapping[str, str] = env if env is not None else {}
        self._defaults: Mapping[str, str] = defaults if defaults is not None else DEFAULTS
        self._clock = clock
        self._entries: dict[str, str] = {}
        self._timestamp: Optional[float] = None

    @property
    def is_fresh(self) -> bool:
        if self._timestamp is None:
            return False
        return (self._clock() - self._timestamp) < self._ttl

    def invalidate(self) -> None:
        self._timestamp = None

    async def reload(self) -> None:
        """Replace the snapshot; a failed read keeps the previous one."""

        try:
            entries = await self._store.list_all()
        except sqlite3.Error as exc:
            logger.warning("Config store unavailable, keeping previous snapshot: %s", exc)
            return
        self._entries = dict(entries)
        self._timestamp = self._clock()

    async def get(self, key: str) -> str:
        if self.is_fresh and key in self._entries:
            return self._entries[key]
        await self.reload()
        if key in self._entries:
            return self._entries[key]
        env_value = self._env.get(env_key_for(key))
        if env_value:
            return env_value
        return self._defaults.get(key, "")

    async def set(self, key: str, value: str) -> None:
        await self._store.put(key, value)
        self.invalidate()

    async def delete(self, key: str) -> None:
        await self._store.delete(key)
        self.invalidate()

    async def get_bool(self, key: str) -> bool:
        return (await self.get(key)) == "true"

    async def set_bool(self, key: str, value: bool) -> None:
        await self.set(key, "true" if value else "false")

    async def get_int(self, key: str, default: int) -> int:
        raw = (await self.get(key)).strip()
        try:
            value = int(raw)
        except ValueError:
            if raw:
                logger.warning("Config %s is not an integer: %r", key, raw)
            return default
        return value if value > 0 else default

    async def get_json_list(self, key: str) -> list[Any]:
        raw = await self.get(key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Config %s holds malformed JSON", key)
            return []
        return data if isinstance(data, list) else []

    async def get_admin_state(self, admin_id: str) -> Optional[AdminInputState]:
        return AdminInputState.from_json(await self.get(f"{ADMIN_STATE_PREFIX}{admin_id}"))

    async def set_admin_state(self, admin_id: str, state: AdminInputState) -> None:
        await self.set(f"{ADMIN_STATE_PREFIX}{admin_id}", state.to_json())

    async def clear_admin_state(self, admin_id: str) -> None:
        await self.delete(f"{ADMIN_STATE_PREFIX}{admin_id}")


__all__ = ["ADMIN_STATE_PREFIX", "ConfigCache", "DEFAULTS", "env_key_for"]
