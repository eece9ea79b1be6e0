"""Keyword auto-responses and the busy-mode notice."""

from __future__ import annotations

import re
import time
from typing import Callable, Optional

from relaybot.models import UserRecord
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import MessagingGateway, best_effort
from relaybot.services.storage_base import UserStore
from relaybot.texts import messages as msg
from logger import get_logger

logger = get_logger(__name__)

BUSY_NOTICE_INTERVAL_SECONDS = 300


async def find_auto_reply(settings: ConfigCache, text: str) -> Optional[str]:
    """Return the response of the first ``keyword_responses`` rule matching ``text``."""

    for rule in await settings.get_json_list("keyword_responses"):
        if not isinstance(rule, dict):
            continue
        pattern = rule.get("keywords")
        response = rule.get("response")
        if not pattern or not response:
            continue
        try:
            if re.search(str(pattern), text, re.IGNORECASE):
                return str(response)
        except re.error as exc:
            logger.warning("Skipping malformed auto-reply pattern %r: %s", pattern, exc)
    return None


class BusyNotifier:
    """Tells users the admins are away, at most once per interval."""

    def __init__(
        self,
        gateway: MessagingGateway,
        users: UserStore,
        settings: ConfigCache,
        *,
        clock: Callable[[], float] = time.time,
        interval_seconds: int = BUSY_NOTICE_INTERVAL_SECONDS,
    ) -> None:
        self._gateway = gateway
        self._users = users
        self._settings = settings
        self._clock = clock
        self._interval = interval_seconds

    async def maybe_notify(self, record: UserRecord) -> bool:
        if not await self._settings.get_bool("busy_mode"):
            return False
        now = int(self._clock())
        if now - record.info.last_busy_reply < self._interval:
            return False
        notice = await self._settings.get("busy_msg")
        if not notice:
            return False
        await best_effort(
            self._gateway.send_text(record.user_id, f"{msg.BUSY_PREFIX}{notice}"),
            label="busy notice",
        )
        await self._users.update(record.user_id, info={"last_busy_reply": now})
        record.info.last_busy_reply = now
        return True


__all__ = ["BUSY_NOTICE_INTERVAL_SECONDS", "BusyNotifier", "find_auto_reply"]
