"""Outbound messaging gateway over the Telegram Bot API."""

from __future__ import annotations

import abc
import asyncio
from typing import Any, Awaitable, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup, ReplyParameters

from logger import get_logger

logger = get_logger(__name__)


class GatewayError(RuntimeError):
    """Raised when the messaging provider rejects a call."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    @property
    def thread_missing(self) -> bool:
        """True when the provider reports that the target thread is gone."""

        return "thread" in self.reason.lower()


class MessagingGateway(abc.ABC):
    """Calls the relay core makes against the messaging provider.

    Chat and thread identifiers are strings; every method raises
    :class:`GatewayError` on provider failure.
    """

    @abc.abstractmethod
    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: Optional[str] = None,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        reply_to: Optional[int] = None,
        silent: bool = False,
        html: bool = True,
    ) -> int:
        """Send a text message and return its message id."""

    @abc.abstractmethod
    async def send_media(
        self,
        chat_id: str,
        media_type: str,
        file_id: str,
        *,
        caption: Optional[str] = None,
        thread_id: Optional[str] = None,
    ) -> int:
        """Send a photo, video or animation by file id."""

    @abc.abstractmethod
    async def copy_message(
        self,
        chat_id: str,
        from_chat_id: str,
        message_id: int,
        *,
        thread_id: Optional[str] = None,
    ) -> int:
        """Copy a message verbatim and return the new message id."""

    @abc.abstractmethod
    async def create_thread(self, chat_id: str, name: str) -> str:
        """Create a forum topic and return its thread id."""

    @abc.abstractmethod
    async def pin_message(self, chat_id: str, message_id: int) -> None:
        """Pin a message."""

    @abc.abstractmethod
    async def delete_message(self, chat_id: str, message_id: int) -> None:
        """Delete a message."""

    @abc.abstractmethod
    async def edit_message(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        *,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> None:
        """Replace the text of a message."""

    @abc.abstractmethod
    async def edit_markup(
        self,
        chat_id: str,
        message_id: int,
        reply_markup: Optional[InlineKeyboardMarkup],
    ) -> None:
        """Replace the inline keyboard of a message."""

    @abc.abstractmethod
    async def answer_interaction(
        self,
        interaction_id: str,
        text: Optional[str] = None,
        *,
        show_alert: bool = False,
    ) -> None:
        """Acknowledge a button press."""


def _thread(thread_id: Optional[str]) -> Optional[int]:
    return int(thread_id) if thread_id else None


def _chat(chat_id: str) -> int | str:
    try:
        return int(chat_id)
    except (TypeError, ValueError):
        return chat_id


class TelegramGateway(MessagingGateway):
    """Messaging gateway backed by an aiogram ``Bot``."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except TelegramAPIError as exc:
            raise GatewayError(exc.message) from exc

    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: Optional[str] = None,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        reply_to: Optional[int] = None,
        silent: bool = False,
        html: bool = True,
    ) -> int:
        sent = await self._call(
            self._bot.send_message(
                chat_id=_chat(chat_id),
                text=text,
                message_thread_id=_thread(thread_id),
                reply_markup=reply_markup,
                reply_parameters=(
                    ReplyParameters(message_id=reply_to, allow_sending_without_reply=True)
                    if reply_to
                    else None
                ),
                disable_notification=silent or None,
                parse_mode="HTML" if html else None,
            )
        )
        return sent.message_id

    async def send_media(
        self,
        chat_id: str,
        media_type: str,
        file_id: str,
        *,
        caption: Optional[str] = None,
        thread_id: Optional[str] = None,
    ) -> int:
        senders = {
            "photo": lambda: self._bot.send_photo(
                chat_id=_chat(chat_id),
                photo=file_id,
                caption=caption,
                message_thread_id=_thread(thread_id),
                parse_mode="HTML",
            ),
            "video": lambda: self._bot.send_video(
                chat_id=_chat(chat_id),
                video=file_id,
                caption=caption,
                message_thread_id=_thread(thread_id),
                parse_mode="HTML",
            ),
            "animation": lambda: self._bot.send_animation(
                chat_id=_chat(chat_id),
                animation=file_id,
                caption=caption,
                message_thread_id=_thread(thread_id),
                parse_mode="HTML",
            ),
        }
        sender = senders.get(media_type)
        if sender is None:
            raise GatewayError(f"Unsupported media type: {media_type}")
        sent = await self._call(sender())
        return sent.message_id

    async def copy_message(
        self,
        chat_id: str,
        from_chat_id: str,
        message_id: int,
        *,
        thread_id: Optional[str] = None,
    ) -> int:
        copied = await self._call(
            self._bot.copy_message(
                chat_id=_chat(chat_id),
                from_chat_id=_chat(from_chat_id),
                message_id=message_id,
                message_thread_id=_thread(thread_id),
            )
        )
        return copied.message_id

    async def create_thread(self, chat_id: str, name: str) -> str:
        topic = await self._call(self._bot.create_forum_topic(chat_id=_chat(chat_id), name=name))
        return str(topic.message_thread_id)

    async def pin_message(self, chat_id: str, message_id: int) -> None:
        await self._call(
            self._bot.pin_chat_message(
                chat_id=_chat(chat_id), message_id=message_id, disable_notification=True
            )
        )

    async def delete_message(self, chat_id: str, message_id: int) -> None:
        await self._call(self._bot.delete_message(chat_id=_chat(chat_id), message_id=message_id))

    async def edit_message(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        *,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> None:
        await self._call(
            self._bot.edit_message_text(
                text=text,
                chat_id=_chat(chat_id),
                message_id=message_id,
                reply_markup=reply_markup,
                parse_mode="HTML",
            )
        )

    async def edit_markup(
        self,
        chat_id: str,
        message_id: int,
        reply_markup: Optional[InlineKeyboardMarkup],
    ) -> None:
        await self._call(
            self._bot.edit_message_reply_markup(
                chat_id=_chat(chat_id), message_id=message_id, reply_markup=reply_markup
            )
        )

    async def answer_interaction(
        self,
        interaction_id: str,
        text: Optional[str] = None,
        *,
        show_alert: bool = False,
    ) -> None:
        await self._call(
            self._bot.answer_callback_query(
                callback_query_id=interaction_id, text=text, show_alert=show_alert
            )
        )


_background_tasks: set[asyncio.Task] = set()


def fire_and_forget(awaitable: Awaitable[Any], *, label: str) -> None:
    """Run a best-effort send without waiting for it or surfacing errors."""

    async def _runner() -> None:
        try:
            await awaitable
        except GatewayError as exc:
            logger.debug("Best-effort %s failed: %s", label, exc.reason)

    task = asyncio.create_task(_runner())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def best_effort(awaitable: Awaitable[Any], *, label: str) -> Any:
    """Await a non-critical call, logging and discarding provider failures."""

    try:
        return await awaitable
    except GatewayError as exc:
        logger.debug("Best-effort %s failed: %s", label, exc.reason)
        return None


__all__ = [
    "GatewayError",
    "MessagingGateway",
    "TelegramGateway",
    "best_effort",
    "fire_and_forget",
]
