"""Telegram update handlers wiring the relay services together."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from aiogram import F, Router
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, Message

from relaybot.keyboards import (
    BLOCK_CALLBACK,
    INBOX_DISMISS_CALLBACK,
    NOTE_SET_CALLBACK,
    PIN_CARD_CALLBACK,
    UNBLOCK_CALLBACK,
)
from relaybot.models import AdminInputState, SenderProfile
from relaybot.services.admins import AdminDirectory
from relaybot.services.auto_reply import BusyNotifier, find_auto_reply
from relaybot.services.blacklist import BlacklistGate
from relaybot.services.classifier import check_kind
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import MessagingGateway, best_effort
from relaybot.services.inbox import InboxAggregator
from relaybot.services.relay import TopicRelay
from relaybot.services.storage_base import UserStore
from relaybot.services.verification import VerificationService
from relaybot.texts import messages as msg
from logger import get_logger, info_domain

NOTE_INPUT_ACTION = "input_note"


def _callback_target(data: Optional[str]) -> str:
    return (data or "").rsplit(":", 1)[-1]


def setup_router(
    *,
    gateway: MessagingGateway,
    users: UserStore,
    settings: ConfigCache,
    admins: AdminDirectory,
    verification: VerificationService,
    blacklist: BlacklistGate,
    relay: TopicRelay,
    inbox: InboxAggregator,
    busy: BusyNotifier,
    admin_group_id: str,
    on_admin_start: Optional[Callable[[str], Awaitable[None]]] = None,
) -> Router:
    router = Router()
    logger = get_logger("bot.handlers")

    def _is_private(event: Message) -> bool:
        return getattr(event.chat, "type", None) == "private"

    def _in_admin_group(event: Message) -> bool:
        return str(event.chat.id) == admin_group_id

    def _callback_in_admin_group(callback: CallbackQuery) -> bool:
        message = callback.message
        return message is not None and str(message.chat.id) == admin_group_id

    async def _is_primary_admin(message: Message) -> bool:
        return message.from_user is not None and admins.is_primary(message.from_user.id)

    async def _reject_unauthorized(callback: CallbackQuery) -> bool:
        if await admins.is_authorized(callback.from_user.id):
            return False
        await best_effort(
            gateway.answer_interaction(callback.id, msg.NOT_ALLOWED, show_alert=True),
            label="callback answer",
        )
        return True

    async def _save_note(message: Message, state: AdminInputState) -> None:
        text = (message.text or "").strip()
        note = None if text.lower() in msg.NOTE_CLEAR_COMMANDS else text
        record = await users.get_or_create(state.target or "")
        await users.update(record.user_id, info={"note": note})
        record.info.note = note
        await settings.clear_admin_state(str(message.from_user.id))
        await relay.refresh_card(record)
        await inbox.refresh(record)
        thread_id = message.message_thread_id
        await best_effort(
            gateway.send_text(
                admin_group_id,
                msg.NOTE_UPDATED,
                thread_id=str(thread_id) if thread_id else None,
            ),
            label="note confirmation",
        )
        info_domain("admin.note", "Note updated", stage="NOTE_UPDATED", user_id=record.user_id)

    @router.message(CommandStart(), _is_private, _is_primary_admin)
    async def handle_admin_start(message: Message) -> None:
        chat_id = str(message.chat.id)
        await gateway.send_text(chat_id, msg.ADMIN_HELP)
        if on_admin_start is not None:
            await on_admin_start(chat_id)

    @router.message(Command("help"), _is_private, _is_primary_admin)
    async def handle_admin_help(message: Message) -> None:
        await gateway.send_text(str(message.chat.id), msg.ADMIN_HELP)

    @router.message(CommandStart(), _is_private)
    async def handle_start(message: Message) -> None:
        profile = SenderProfile.from_user(message.from_user)
        record = await users.get_or_create(profile.user_id)
        await relay.sync_profile(record, profile)
        if await admins.is_authorized(profile.user_id):
            await verification.promote_admin(record)
        await verification.reenter(record, profile)

    @router.message(_is_private)
    async def handle_private_message(message: Message) -> None:
        profile = SenderProfile.from_user(message.from_user)
        record = await users.get_or_create(profile.user_id)
        if record.is_blocked:
            return

        if await admins.is_authorized(profile.user_id):
            await verification.promote_admin(record)
        if not await verification.admit(record, profile, message):
            return

        decision = await check_kind(message, settings)
        if not decision.allowed:
            await best_effort(
                gateway.send_text(profile.user_id, decision.rejection_text),
                label="kind rejection",
            )
            return

        if (
            not record.first_message_sent
            and not message.text
            and await settings.get_bool("require_text_first_message")
        ):
            await best_effort(
                gateway.send_text(profile.user_id, msg.FIRST_MESSAGE_TEXT_ONLY),
                label="first message notice",
            )
            return

        verdict = await blacklist.check(record, profile, message.text or message.caption)
        if not verdict.passed:
            return

        if message.text:
            response = await find_auto_reply(settings, message.text)
            if response is not None:
                await best_effort(
                    gateway.send_text(profile.user_id, msg.AUTO_REPLY.format(response=response)),
                    label="auto reply",
                )
                return

        await busy.maybe_notify(record)
        await relay.sync_profile(record, profile)
        await relay.forward_to_admins(record, profile, message)

    @router.edited_message(_is_private)
    async def handle_private_edit(message: Message) -> None:
        await relay.report_edit(message)

    @router.message(_in_admin_group)
    async def handle_group_message(message: Message) -> None:
        sender = message.from_user
        if sender is None or sender.is_bot:
            return
        if await admins.is_authorized(sender.id):
            state = await settings.get_admin_state(str(sender.id))
            if state is not None and state.action == NOTE_INPUT_ACTION and state.target:
                await _save_note(message, state)
                return
        await relay.forward_to_user(message)

    @router.callback_query(F.data.startswith(f"{INBOX_DISMISS_CALLBACK}:"), _callback_in_admin_group)
    async def handle_inbox_dismiss(callback: CallbackQuery) -> None:
        if await _reject_unauthorized(callback):
            return
        await inbox.dismiss(_callback_target(callback.data), callback.message.message_id)
        await best_effort(
            gateway.answer_interaction(callback.id, msg.INBOX_DISMISSED),
            label="callback answer",
        )

    @router.callback_query(F.data.startswith(f"{NOTE_SET_CALLBACK}:"), _callback_in_admin_group)
    async def handle_note_request(callback: CallbackQuery) -> None:
        if await _reject_unauthorized(callback):
            return
        target = _callback_target(callback.data)
        await settings.set_admin_state(
            str(callback.from_user.id), AdminInputState(action=NOTE_INPUT_ACTION, target=target)
        )
        thread_id = getattr(callback.message, "message_thread_id", None)
        await best_effort(
            gateway.send_text(
                admin_group_id,
                msg.NOTE_PROMPT,
                thread_id=str(thread_id) if thread_id else None,
            ),
            label="note prompt",
        )
        await best_effort(gateway.answer_interaction(callback.id), label="callback answer")

    @router.callback_query(F.data.startswith(f"{PIN_CARD_CALLBACK}:"), _callback_in_admin_group)
    async def handle_pin_card(callback: CallbackQuery) -> None:
        if await _reject_unauthorized(callback):
            return
        await best_effort(
            gateway.pin_message(admin_group_id, callback.message.message_id),
            label="card pin",
        )
        await best_effort(gateway.answer_interaction(callback.id, msg.PINNED), label="callback answer")

    @router.callback_query(
        F.data.startswith(f"{BLOCK_CALLBACK}:") | F.data.startswith(f"{UNBLOCK_CALLBACK}:"),
        _callback_in_admin_group,
    )
    async def handle_block_toggle(callback: CallbackQuery) -> None:
        if await _reject_unauthorized(callback):
            return
        blocked = callback.data.startswith(f"{BLOCK_CALLBACK}:")
        record = await users.get_or_create(_callback_target(callback.data))
        await blacklist.set_blocked(record, SenderProfile.from_record(record), blocked)
        await relay.update_card_markup(record)
        info_domain(
            "admin.block",
            "Block toggled",
            stage="USER_BLOCKED" if blocked else "USER_UNBLOCKED",
            user_id=record.user_id,
            admin_id=callback.from_user.id,
        )
        notice = msg.USER_BLOCKED_NOTICE if blocked else msg.USER_UNBLOCKED_NOTICE
        await best_effort(gateway.answer_interaction(callback.id, notice), label="callback answer")

    logger.debug("Relay router configured for group %s", admin_group_id)
    return router


__all__ = ["NOTE_INPUT_ACTION", "setup_router"]
