"""HTML profile cards shown in the admin group."""

from __future__ import annotations

import html
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from relaybot.models import SenderProfile, UserRecord
from relaybot.texts import messages as msg

TOPIC_NAME_LIMIT = 128
CARD_TIMEZONE = timezone(timedelta(hours=8))


def escape(value: object) -> str:
    return html.escape("" if value is None else str(value), quote=False)


def topic_name(profile: SenderProfile) -> str:
    return f"{profile.full_name} | {profile.user_id}"[:TOPIC_NAME_LIMIT]


def mention_link(user_id: str, label: str) -> str:
    return f'<a href="tg://user?id={user_id}">{escape(label)}</a>'


def format_timestamp(timestamp: Optional[int]) -> str:
    moment = datetime.fromtimestamp(timestamp or time.time(), tz=CARD_TIMEZONE)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def profile_card(profile: SenderProfile, record: UserRecord, timestamp: Optional[int] = None) -> str:
    """Render the info card for a user bound to a topic."""

    user_link = (
        f'<a href="tg://user?id={profile.user_id}">@{escape(profile.username)}</a>'
        if profile.username
        else msg.PROFILE_NO_USERNAME
    )
    note = msg.PROFILE_NOTE_LINE.format(note=escape(record.info.note)) if record.info.note else ""
    return (
        f"{msg.PROFILE_CARD_TITLE}\n---\n"
        f"👤: <code>{escape(profile.full_name)}</code>\n"
        f"🔗: {user_link}\n"
        f"🆔: <code>{profile.user_id}</code>{note}\n"
        f"🕒: <code>{format_timestamp(timestamp)}</code>"
    )


def preview(text: Optional[str], limit: int = 20) -> str:
    if not text:
        return msg.INBOX_MEDIA_PREVIEW
    return text if len(text) <= limit else f"{text[:limit]}..."


__all__ = [
    "escape",
    "format_timestamp",
    "mention_link",
    "preview",
    "profile_card",
    "topic_name",
]
