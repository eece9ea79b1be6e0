"""Relay between private chats and per-user forum threads."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Optional

from relaybot import cards
from relaybot.infrastructure.concurrency import SingleFlight
from relaybot.keyboards import profile_card_keyboard
from relaybot.models import SenderProfile, UserRecord
from relaybot.services.admins import AdminDirectory
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import GatewayError, MessagingGateway, best_effort, fire_and_forget
from relaybot.services.inbox import InboxAggregator
from relaybot.services.storage_base import MessageLog, UserStore
from relaybot.texts import messages as msg
from logger import get_logger, info_domain

logger = get_logger(__name__)


def message_timestamp(message: Any) -> int:
    moment = getattr(message, "date", None)
    if isinstance(moment, datetime):
        return int(moment.timestamp())
    if isinstance(moment, (int, float)):
        return int(moment)
    return int(time.time())


class TopicRelay:
    """Moves messages between users and their admin-group thread."""

    def __init__(
        self,
        gateway: MessagingGateway,
        users: UserStore,
        message_log: MessageLog,
        settings: ConfigCache,
        inbox: InboxAggregator,
        admins: AdminDirectory,
        *,
        admin_group_id: str,
        single_flight: Optional[SingleFlight] = None,
    ) -> None:
        self._gateway = gateway
        self._users = users
        self._log = message_log
        self._settings = settings
        self._inbox = inbox
        self._admins = admins
        self._group_id = admin_group_id
        self._single_flight = single_flight or SingleFlight()

    async def sync_profile(self, record: UserRecord, profile: SenderProfile) -> None:
        """Keep the stored display name and handle in line with Telegram."""

        changes: dict[str, Any] = {}
        if profile.full_name and record.info.name != profile.full_name:
            changes["name"] = profile.full_name
        if record.info.username != profile.username:
            changes["username"] = profile.username
        if not changes:
            return
        await self._users.update(record.user_id, info=changes)
        record.info = record.info.merged(changes)

    async def ensure_topic(self, record: UserRecord, profile: SenderProfile) -> Optional[str]:
        """Return the user's thread, creating it on first contact.

        Only one caller per user creates the thread; concurrent callers get
        None and their message is dropped.
        """

        if record.topic_id:
            return record.topic_id

        async with self._single_flight.hold(record.user_id) as acquired:
            if not acquired:
                logger.info("Thread creation already running for %s", record.user_id)
                return None
            stored = await self._users.get_or_create(record.user_id)
            if stored.topic_id:
                record.topic_id = stored.topic_id
                return stored.topic_id
            try:
                thread_id = await self._gateway.create_thread(self._group_id, cards.topic_name(profile))
            except GatewayError as exc:
                logger.warning("Thread for %s not created: %s", record.user_id, exc.reason)
                await best_effort(
                    self._gateway.send_text(record.user_id, msg.TRY_AGAIN_LATER),
                    label="thread failure notice",
                )
                return None
            await self._users.update(record.user_id, topic_id=thread_id)
            record.topic_id = thread_id

        info_domain(
            "relay.topic",
            "Thread created",
            stage="TOPIC_CREATED",
            user_id=record.user_id,
            thread_id=thread_id,
        )
        await self.send_info_card(record, profile)
        return thread_id

    async def send_info_card(self, record: UserRecord, profile: SenderProfile) -> bool:
        """Post and pin the profile card at the top of the user's thread."""

        if not record.topic_id:
            return False
        joined_at = record.info.joined_at or int(time.time())
        try:
            message_id = await self._gateway.send_text(
                self._group_id,
                cards.profile_card(profile, record, joined_at),
                thread_id=record.topic_id,
                reply_markup=profile_card_keyboard(record.user_id, record.is_blocked),
            )
        except GatewayError as exc:
            logger.warning("Profile card for %s not sent: %s", record.user_id, exc.reason)
            return False
        await best_effort(self._gateway.pin_message(self._group_id, message_id), label="card pin")
        await self._users.update(
            record.user_id, info={"card_msg_id": message_id, "joined_at": joined_at}
        )
        record.info.card_msg_id = message_id
        record.info.joined_at = joined_at
        return True

    async def refresh_card(self, record: UserRecord) -> None:
        """Re-render the profile card in place, re-posting it if edit fails."""

        if not record.topic_id:
            return
        profile = SenderProfile.from_record(record)
        if record.info.card_msg_id:
            try:
                await self._gateway.edit_message(
                    self._group_id,
                    record.info.card_msg_id,
                    cards.profile_card(profile, record, record.info.joined_at),
                    reply_markup=profile_card_keyboard(record.user_id, record.is_blocked),
                )
                return
            except GatewayError as exc:
                if "not modified" in exc.reason.lower():
                    return
                logger.debug("Card edit for %s failed: %s", record.user_id, exc.reason)
        await self.send_info_card(record, profile)

    async def update_card_markup(self, record: UserRecord) -> None:
        if not record.info.card_msg_id:
            return
        await best_effort(
            self._gateway.edit_markup(
                self._group_id,
                record.info.card_msg_id,
                profile_card_keyboard(record.user_id, record.is_blocked),
            ),
            label="card markup",
        )

    async def forward_to_admins(self, record: UserRecord, profile: SenderProfile, message: Any) -> bool:
        """Copy a verified user's message into their thread."""

        thread_id = await self.ensure_topic(record, profile)
        if not thread_id:
            return False

        try:
            await self._gateway.copy_message(
                self._group_id, record.user_id, message.message_id, thread_id=thread_id
            )
        except GatewayError as exc:
            if exc.thread_missing:
                logger.info("Thread %s vanished, unbinding %s", thread_id, record.user_id)
                await self._users.update(record.user_id, topic_id=None)
                record.topic_id = None
                await best_effort(
                    self._gateway.send_text(record.user_id, msg.RESEND_PLEASE),
                    label="resend notice",
                )
            else:
                logger.warning("Relay for %s failed: %s", record.user_id, exc.reason)
                await best_effort(
                    self._gateway.send_text(record.user_id, msg.TRY_AGAIN_LATER),
                    label="retry notice",
                )
            return False

        fire_and_forget(
            self._gateway.send_text(
                record.user_id, msg.DELIVERED, reply_to=message.message_id, silent=True
            ),
            label="delivery receipt",
        )
        if message.text:
            await self._log.put(
                record.user_id, message.message_id, message.text, message_timestamp(message)
            )
        if not record.first_message_sent:
            await self._users.update(record.user_id, first_message_sent=True)
            record.first_message_sent = True
        await self._backup(profile, message)
        await self._inbox.notify(record, profile, thread_id, message.text or message.caption)
        return True

    async def forward_to_user(self, message: Any) -> bool:
        """Deliver an admin's message from a bound thread to its user."""

        thread_id = getattr(message, "message_thread_id", None)
        sender = getattr(message, "from_user", None)
        if not thread_id or sender is None or sender.is_bot:
            return False
        if not await self._admins.is_authorized(sender.id):
            return False
        user_id = await self._users.find_by_topic(str(thread_id))
        if not user_id:
            return False

        try:
            await self._gateway.copy_message(user_id, self._group_id, message.message_id)
        except GatewayError as exc:
            logger.warning("Admin reply to %s failed: %s", user_id, exc.reason)
            await best_effort(
                self._gateway.send_text(
                    self._group_id,
                    msg.ADMIN_REPLY_FAILED,
                    thread_id=str(thread_id),
                    reply_to=message.message_id,
                ),
                label="reply failure notice",
            )
            return False

        if await self._settings.get_bool("enable_admin_receipt"):
            fire_and_forget(
                self._gateway.send_text(
                    self._group_id,
                    msg.ADMIN_REPLY_RECEIPT,
                    thread_id=str(thread_id),
                    reply_to=message.message_id,
                    silent=True,
                ),
                label="admin receipt",
            )
        return True

    async def report_edit(self, message: Any) -> bool:
        """Tell the admins that a relayed message was edited."""

        user_id = str(message.chat.id)
        record = await self._users.get_or_create(user_id)
        if not record.topic_id:
            return False

        logged = await self._log.get(user_id, message.message_id)
        before = logged.text if logged else msg.EDIT_UNKNOWN_BEFORE
        after = message.text or message.caption or msg.EDIT_NON_TEXT
        try:
            await self._gateway.send_text(
                self._group_id,
                msg.EDIT_REPORT.format(before=cards.escape(before), after=cards.escape(after)),
                thread_id=record.topic_id,
            )
        except GatewayError as exc:
            if exc.thread_missing:
                await self._users.update(user_id, topic_id=None)
            logger.warning("Edit report for %s failed: %s", user_id, exc.reason)
            return False
        if message.text:
            await self._log.put(user_id, message.message_id, message.text, message_timestamp(message))
        return True

    async def _backup(self, profile: SenderProfile, message: Any) -> None:
        backup_id = await self._settings.get("backup_group_id")
        if not backup_id:
            return
        header = msg.BACKUP_HEADER.format(name=cards.escape(profile.full_name), user_id=profile.user_id)
        try:
            if message.text:
                await self._gateway.send_text(backup_id, f"{header}\n{cards.escape(message.text)}")
            else:
                await self._gateway.send_text(backup_id, header)
                await self._gateway.copy_message(backup_id, profile.user_id, message.message_id)
        except GatewayError as exc:
            logger.debug("Backup copy failed: %s", exc.reason)


__all__ = ["TopicRelay", "message_timestamp"]
