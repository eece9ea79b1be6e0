"""Keyword blacklist with escalating warnings and a blacklist thread."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from relaybot import cards
from relaybot.keyboards import blacklist_keyboard
from relaybot.models import SenderProfile, UserRecord
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import GatewayError, MessagingGateway, best_effort
from relaybot.services.storage_base import UserStore
from relaybot.texts import messages as msg
from logger import get_logger, info_domain

logger = get_logger(__name__)

DEFAULT_BLOCK_THRESHOLD = 5


class Verdict(str, Enum):
    PASSED = "passed"
    WARNED = "warned"
    BLOCKED = "blocked"


@dataclass(frozen=True, slots=True)
class BlacklistResult:
    verdict: Verdict
    count: int = 0
    threshold: int = DEFAULT_BLOCK_THRESHOLD
    pattern: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.verdict is Verdict.PASSED


class BlacklistGate:
    """Counts keyword hits per user and blocks at the configured threshold."""

    def __init__(
        self,
        gateway: MessagingGateway,
        users: UserStore,
        settings: ConfigCache,
        *,
        admin_group_id: str,
    ) -> None:
        self._gateway = gateway
        self._users = users
        self._settings = settings
        self._group_id = admin_group_id

    async def match(self, text: str) -> Optional[str]:
        """Return the first pattern from ``block_keywords`` found in ``text``."""

        for pattern in await self._settings.get_json_list("block_keywords"):
            if not isinstance(pattern, str) or not pattern:
                continue
            try:
                if re.search(pattern, text, re.IGNORECASE):
                    return pattern
            except re.error as exc:
                logger.warning("Skipping malformed block pattern %r: %s", pattern, exc)
        return None

    async def check(self, record: UserRecord, profile: SenderProfile, text: Optional[str]) -> BlacklistResult:
        """Apply the gate to a verified user's message text.

        Hits increment ``block_count``; the user is told the running count
        or, at the threshold, that they are now blocked.
        """

        if not text:
            return BlacklistResult(Verdict.PASSED)
        pattern = await self.match(text)
        if pattern is None:
            return BlacklistResult(Verdict.PASSED)

        threshold = await self._settings.get_int("block_threshold", DEFAULT_BLOCK_THRESHOLD)
        count = record.block_count + 1
        blocked = count >= threshold
        await self._users.update(record.user_id, block_count=count, is_blocked=blocked)
        record.block_count = count
        record.is_blocked = blocked

        if blocked:
            info_domain(
                "blacklist.gate",
                "User blocked by keyword",
                stage="USER_BLOCKED",
                user_id=record.user_id,
                count=count,
            )
            await self.post_card(record, profile)
            await best_effort(
                self._gateway.send_text(record.user_id, msg.KEYWORD_BLOCKED),
                label="blocked notice",
            )
            return BlacklistResult(Verdict.BLOCKED, count, threshold, pattern)

        await best_effort(
            self._gateway.send_text(
                record.user_id, msg.KEYWORD_WARNING.format(count=count, threshold=threshold)
            ),
            label="keyword warning",
        )
        return BlacklistResult(Verdict.WARNED, count, threshold, pattern)

    async def set_blocked(self, record: UserRecord, profile: SenderProfile, blocked: bool) -> None:
        """Manual block or unblock from the admin group."""

        await self._users.update(record.user_id, is_blocked=blocked, block_count=0)
        record.is_blocked = blocked
        record.block_count = 0
        if blocked:
            await self.post_card(record, profile)
        else:
            await self.release(record)

    async def post_card(self, record: UserRecord, profile: SenderProfile) -> bool:
        thread_id = await self._ensure_thread()
        if not thread_id:
            return False
        text = f"{msg.BLACKLIST_CARD_TITLE}\n{cards.profile_card(profile, record)}"
        try:
            message_id = await self._gateway.send_text(
                self._group_id,
                text,
                thread_id=thread_id,
                reply_markup=blacklist_keyboard(record.user_id),
            )
        except GatewayError as exc:
            if exc.thread_missing:
                await self._settings.set("blocked_topic_id", "")
            logger.warning("Blacklist card for %s not posted: %s", record.user_id, exc.reason)
            return False
        await self._users.update(record.user_id, info={"blacklist_msg_id": message_id})
        record.info.blacklist_msg_id = message_id
        return True

    async def release(self, record: UserRecord) -> None:
        """Remove the user's blacklist card if one is outstanding."""

        message_id = record.info.blacklist_msg_id
        if not message_id:
            return
        try:
            await self._gateway.delete_message(self._group_id, message_id)
        except GatewayError as exc:
            if exc.thread_missing:
                await self._settings.set("blocked_topic_id", "")
            logger.debug("Blacklist card %s not deleted: %s", message_id, exc.reason)
        await self._users.update(record.user_id, info={"blacklist_msg_id": None})
        record.info.blacklist_msg_id = None

    async def _ensure_thread(self) -> Optional[str]:
        thread_id = await self._settings.get("blocked_topic_id")
        if thread_id:
            return thread_id
        try:
            thread_id = await self._gateway.create_thread(self._group_id, msg.BLACKLIST_THREAD_NAME)
        except GatewayError as exc:
            logger.warning("Blacklist thread not created: %s", exc.reason)
            return None
        await self._settings.set("blocked_topic_id", thread_id)
        return thread_id


__all__ = ["BlacklistGate", "BlacklistResult", "DEFAULT_BLOCK_THRESHOLD", "Verdict"]
