"""Debounced "unread messages" posts in a shared admin thread."""

from __future__ import annotations

import time
from typing import Callable, Optional

from relaybot import cards
from relaybot.keyboards import inbox_keyboard
from relaybot.models import SenderProfile, UserRecord
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import GatewayError, MessagingGateway, best_effort
from relaybot.services.storage_base import UserStore
from relaybot.texts import messages as msg
from logger import get_logger

logger = get_logger(__name__)

QUIET_WINDOW_SECONDS = 300
GUARD_SECONDS = 5.0


class InboxAggregator:
    """Keeps at most one outstanding inbox post per user.

    A new post is made only when the previous one is older than the quiet
    window; the older post is deleted first so the thread stays short.
    """

    def __init__(
        self,
        gateway: MessagingGateway,
        users: UserStore,
        settings: ConfigCache,
        *,
        admin_group_id: str,
        clock: Callable[[], float] = time.time,
        quiet_window_seconds: int = QUIET_WINDOW_SECONDS,
        guard_seconds: float = GUARD_SECONDS,
    ) -> None:
        self._gateway = gateway
        self._users = users
        self._settings = settings
        self._group_id = admin_group_id
        self._clock = clock
        self._quiet_window = quiet_window_seconds
        self._guard_seconds = guard_seconds
        self._recent: dict[str, float] = {}

    async def notify(
        self,
        record: UserRecord,
        profile: SenderProfile,
        topic_id: str,
        text: Optional[str],
    ) -> bool:
        """Post an inbox entry for a relayed message unless one is recent."""

        now = self._clock()
        recent = self._recent.get(record.user_id)
        if recent is not None and now - recent < self._guard_seconds:
            return False
        if now - record.info.last_notify < self._quiet_window:
            return False
        self._recent[record.user_id] = now
        self._prune(now)

        thread_id = await self._ensure_thread()
        if not thread_id:
            return False

        if record.info.inbox_msg_id:
            await best_effort(
                self._gateway.delete_message(self._group_id, record.info.inbox_msg_id),
                label="inbox cleanup",
            )

        preview_line = msg.INBOX_PREVIEW_LINE.format(preview=cards.escape(cards.preview(text)))
        body = self._render(profile, record, preview_line)
        try:
            message_id = await self._gateway.send_text(
                self._group_id,
                body,
                thread_id=thread_id,
                reply_markup=inbox_keyboard(self._group_id, topic_id, record.user_id),
            )
        except GatewayError as exc:
            if exc.thread_missing:
                await self._settings.set("unread_topic_id", "")
            logger.warning("Inbox post for %s failed: %s", record.user_id, exc.reason)
            return False

        stamp = int(now)
        await self._users.update(
            record.user_id, info={"last_notify": stamp, "inbox_msg_id": message_id}
        )
        record.info.last_notify = stamp
        record.info.inbox_msg_id = message_id
        return True

    async def dismiss(self, user_id: str, message_id: Optional[int]) -> None:
        """Delete an inbox post and reopen the user's quiet window."""

        if message_id:
            await best_effort(
                self._gateway.delete_message(self._group_id, message_id),
                label="inbox dismiss",
            )
        await self._users.update(user_id, info={"last_notify": 0, "inbox_msg_id": None})
        self._recent.pop(user_id, None)

    async def refresh(self, record: UserRecord) -> None:
        """Re-render the outstanding post, e.g. after the note changed."""

        message_id = record.info.inbox_msg_id
        if not message_id or not record.topic_id:
            return
        body = self._render(SenderProfile.from_record(record), record, msg.INBOX_NOTE_UPDATED_LINE)
        await best_effort(
            self._gateway.edit_message(
                self._group_id,
                message_id,
                body,
                reply_markup=inbox_keyboard(self._group_id, record.topic_id, record.user_id),
            ),
            label="inbox refresh",
        )

    def _render(self, profile: SenderProfile, record: UserRecord, footer: str) -> str:
        return f"{msg.INBOX_CARD_TITLE}\n{cards.profile_card(profile, record)}\n{footer}"

    async def _ensure_thread(self) -> Optional[str]:
        thread_id = await self._settings.get("unread_topic_id")
        if thread_id:
            return thread_id
        try:
            thread_id = await self._gateway.create_thread(self._group_id, msg.INBOX_THREAD_NAME)
        except GatewayError as exc:
            logger.warning("Inbox thread not created: %s", exc.reason)
            return None
        await self._settings.set("unread_topic_id", thread_id)
        return thread_id

    def _prune(self, now: float) -> None:
        stale = [key for key, stamp in self._recent.items() if now - stamp >= self._guard_seconds]
        for key in stale:
            self._recent.pop(key, None)


__all__ = ["GUARD_SECONDS", "InboxAggregator", "QUIET_WINDOW_SECONDS"]
