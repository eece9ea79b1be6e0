"""Inline keyboards used across the bot."""

from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo

from relaybot.texts import messages as msg

BLOCK_CALLBACK = "block"
UNBLOCK_CALLBACK = "unblock"
PIN_CARD_CALLBACK = "pin_card"
NOTE_SET_CALLBACK = "note:set"
INBOX_DISMISS_CALLBACK = "inbox:del"


def profile_card_keyboard(user_id: str, is_blocked: bool) -> InlineKeyboardMarkup:
    """Action buttons attached to a user's profile card."""

    toggle = (
        InlineKeyboardButton(text=msg.BUTTON_UNBLOCK, callback_data=f"{UNBLOCK_CALLBACK}:{user_id}")
        if is_blocked
        else InlineKeyboardButton(text=msg.BUTTON_BLOCK, callback_data=f"{BLOCK_CALLBACK}:{user_id}")
    )
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [toggle],
            [
                InlineKeyboardButton(text=msg.BUTTON_NOTE, callback_data=f"{NOTE_SET_CALLBACK}:{user_id}"),
                InlineKeyboardButton(text=msg.BUTTON_PIN, callback_data=f"{PIN_CARD_CALLBACK}:{user_id}"),
            ],
        ]
    )


def blacklist_keyboard(user_id: str) -> InlineKeyboardMarkup:
    """Unblock control for a blacklist thread entry."""

    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=msg.BUTTON_UNBLOCK, callback_data=f"{UNBLOCK_CALLBACK}:{user_id}")]
        ]
    )


def thread_link(group_id: str, thread_id: str) -> str:
    """Deep link to a topic inside a private supergroup."""

    internal = str(group_id)
    if internal.startswith("-100"):
        internal = internal[4:]
    return f"https://t.me/c/{internal}/{thread_id}"


def inbox_keyboard(group_id: str, thread_id: str, user_id: str) -> InlineKeyboardMarkup:
    """Jump and dismiss buttons for an aggregate inbox post."""

    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text=msg.BUTTON_JUMP, url=thread_link(group_id, thread_id)),
                InlineKeyboardButton(
                    text=msg.BUTTON_DISMISS, callback_data=f"{INBOX_DISMISS_CALLBACK}:{user_id}"
                ),
            ]
        ]
    )


def challenge_keyboard(verify_url: str) -> InlineKeyboardMarkup:
    """Web app button opening the verification page."""

    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=msg.CHALLENGE_BUTTON, web_app=WebAppInfo(url=verify_url))]
        ]
    )


__all__ = [
    "BLOCK_CALLBACK",
    "INBOX_DISMISS_CALLBACK",
    "NOTE_SET_CALLBACK",
    "PIN_CARD_CALLBACK",
    "UNBLOCK_CALLBACK",
    "blacklist_keyboard",
    "challenge_keyboard",
    "inbox_keyboard",
    "profile_card_keyboard",
    "thread_link",
]
