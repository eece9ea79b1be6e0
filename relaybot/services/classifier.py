"""Ordered message-kind classification and per-kind forwarding toggles."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from relaybot.services.config_cache import ConfigCache
from relaybot.texts import messages as msg


class MessageKind(str, Enum):
    FORWARDED = "forwarded"
    AUDIO = "audio"
    STICKER = "sticker"
    MEDIA = "media"
    LINK = "link"
    TEXT = "text"


_LINK_ENTITY_TYPES = {"url", "text_link"}


def _is_forwarded(message: Any) -> bool:
    return getattr(message, "forward_origin", None) is not None


def _is_audio(message: Any) -> bool:
    return bool(getattr(message, "audio", None) or getattr(message, "voice", None))


def _is_sticker(message: Any) -> bool:
    return bool(getattr(message, "sticker", None) or getattr(message, "animation", None))


def _is_media(message: Any) -> bool:
    return bool(
        getattr(message, "photo", None)
        or getattr(message, "video", None)
        or getattr(message, "document", None)
    )


def _has_link(message: Any) -> bool:
    entities = list(getattr(message, "entities", None) or []) + list(
        getattr(message, "caption_entities", None) or []
    )
    return any(getattr(entity, "type", None) in _LINK_ENTITY_TYPES for entity in entities)


def _is_text(message: Any) -> bool:
    return bool(getattr(message, "text", None))


# Evaluated top to bottom; the first matching predicate decides the kind.
# A forwarded photo is "forwarded", a voice note with a link is "audio".
KIND_RULES: tuple[tuple[Callable[[Any], bool], MessageKind], ...] = (
    (_is_forwarded, MessageKind.FORWARDED),
    (_is_audio, MessageKind.AUDIO),
    (_is_sticker, MessageKind.STICKER),
    (_is_media, MessageKind.MEDIA),
    (_has_link, MessageKind.LINK),
    (_is_text, MessageKind.TEXT),
)

KIND_TOGGLES: dict[MessageKind, str] = {
    MessageKind.FORWARDED: "enable_forward_forwarding",
    MessageKind.AUDIO: "enable_audio_forwarding",
    MessageKind.STICKER: "enable_sticker_forwarding",
    MessageKind.MEDIA: "enable_image_forwarding",
    MessageKind.LINK: "enable_link_forwarding",
    MessageKind.TEXT: "enable_text_forwarding",
}

CHANNEL_FORWARD_TOGGLE = "enable_channel_forwarding"


def classify(message: Any) -> Optional[MessageKind]:
    """Return the kind of ``message`` or None when no rule applies."""

    for predicate, kind in KIND_RULES:
        if predicate(message):
            return kind
    return None


def is_channel_forward(message: Any) -> bool:
    origin = getattr(message, "forward_origin", None)
    return getattr(origin, "type", None) == "channel"


@dataclass(frozen=True, slots=True)
class KindDecision:
    kind: Optional[MessageKind]
    allowed: bool
    toggle: Optional[str] = None

    @property
    def rejection_text(self) -> str:
        label_key = "channel" if self.toggle == CHANNEL_FORWARD_TOGGLE else (
            self.kind.value if self.kind else "text"
        )
        return msg.KIND_REJECTED.format(kind=msg.KIND_NAMES[label_key])


async def check_kind(message: Any, settings: ConfigCache) -> KindDecision:
    """Classify ``message`` and look up whether its kind may be relayed."""

    kind = classify(message)
    if kind is None:
        return KindDecision(kind=None, allowed=True)
    toggle = KIND_TOGGLES[kind]
    if kind is MessageKind.FORWARDED and is_channel_forward(message):
        toggle = CHANNEL_FORWARD_TOGGLE
    return KindDecision(kind=kind, allowed=await settings.get_bool(toggle), toggle=toggle)


__all__ = [
    "CHANNEL_FORWARD_TOGGLE",
    "KIND_RULES",
    "KIND_TOGGLES",
    "KindDecision",
    "MessageKind",
    "check_kind",
    "classify",
    "is_channel_forward",
]
