from __future__ import annotations

import uuid
from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware

from logger import bind_context, get_logger, reset_context

logger = get_logger("bot.updates")


def relay_direction(chat: Any, admin_group_id: str) -> str:
    """Classify where an update came from: user chat, admin group or elsewhere."""

    if chat is None:
        return "unknown"
    if str(getattr(chat, "id", "")) == admin_group_id:
        return "admin_group"
    if getattr(chat, "type", None) == "private":
        return "private"
    return "foreign"


def update_thread_id(event: Any) -> Any:
    """Forum topic the update belongs to, if any."""

    for attr in ("message", "edited_message"):
        message = getattr(event, attr, None)
        if message is not None:
            return getattr(message, "message_thread_id", None)
    callback = getattr(event, "callback_query", None)
    return getattr(getattr(callback, "message", None), "message_thread_id", None)


class LoggingMiddleware(BaseMiddleware):
    """Tag each update with a request id, its sender and its relay direction."""

    def __init__(self, admin_group_id: str) -> None:
        self._admin_group_id = admin_group_id

    async def __call__(
        self,
        handler: Callable[[Any, dict[str, Any]], Awaitable[Any]],
        event: Any,
        data: dict[str, Any],
    ) -> Any:
        request_id = uuid.uuid4().hex[:8]
        user = data.get("event_from_user")
        direction = relay_direction(data.get("event_chat"), self._admin_group_id)

        data["request_id"] = request_id
        data["relay_direction"] = direction
        tokens = bind_context(
            request_id=request_id,
            user_id=getattr(user, "id", None),
            direction=direction,
            topic_id=update_thread_id(event),
        )
        try:
            logger.debug("Update received", stage="UPDATE")
            return await handler(event, data)
        finally:
            reset_context(tokens)
