"""Domain models used by the relay bot."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Mapping, Optional


class VerificationState(str, Enum):
    """Progress of a user through the verification layers."""

    NEW = "new"
    PENDING_CAPTCHA = "pending_captcha"
    PENDING_QA = "pending_qa"
    VERIFIED = "verified"

    @classmethod
    def parse(cls, raw: str | None) -> "VerificationState":
        if not raw:
            return cls.NEW
        try:
            return cls(raw)
        except ValueError:
            return cls.NEW


@dataclass(slots=True)
class UserInfo:
    """Auxiliary per-user data, updated field by field."""

    name: Optional[str] = None
    username: Optional[str] = None
    note: Optional[str] = None
    joined_at: Optional[int] = None
    last_notify: int = 0
    last_busy_reply: int = 0
    card_msg_id: Optional[int] = None
    inbox_msg_id: Optional[int] = None
    blacklist_msg_id: Optional[int] = None

    def merged(self, changes: Mapping[str, Any]) -> "UserInfo":
        """Return a copy with the known fields from ``changes`` applied."""

        known = {item.name for item in fields(self)}
        return replace(self, **{key: value for key, value in changes.items() if key in known})

    def to_json(self) -> str:
        payload = {key: value for key, value in asdict(self).items() if value is not None}
        return json.dumps(payload, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str | None) -> "UserInfo":
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return cls()
        if not isinstance(data, dict):
            return cls()
        return cls().merged(data)


@dataclass(slots=True)
class UserRecord:
    """Relay state stored for a private chat user."""

    user_id: str
    state: VerificationState = VerificationState.NEW
    is_blocked: bool = False
    block_count: int = 0
    topic_id: Optional[str] = None
    first_message_sent: bool = False
    info: UserInfo = field(default_factory=UserInfo)

    @property
    def is_verified(self) -> bool:
        return self.state is VerificationState.VERIFIED


@dataclass(slots=True)
class LoggedMessage:
    """Text of a relayed message kept for edit reports."""

    text: str
    timestamp: int


@dataclass(frozen=True, slots=True)
class AdminInputState:
    """Pending multi-step admin input stored under ``admin_state:<id>``."""

    action: str
    key: Optional[str] = None
    target: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(
            {"action": self.action, "key": self.key, "target": self.target},
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, raw: str | None) -> Optional["AdminInputState"]:
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict) or not data.get("action"):
            return None
        target = data.get("target")
        return cls(
            action=str(data["action"]),
            key=data.get("key"),
            target=str(target) if target is not None else None,
        )


@dataclass(frozen=True, slots=True)
class SenderProfile:
    """Telegram identity of the person behind a private chat."""

    user_id: str
    first_name: str = ""
    last_name: str = ""
    username: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @classmethod
    def from_user(cls, user: Any) -> "SenderProfile":
        return cls(
            user_id=str(getattr(user, "id", "")),
            first_name=getattr(user, "first_name", None) or "",
            last_name=getattr(user, "last_name", None) or "",
            username=getattr(user, "username", None) or None,
        )

    @classmethod
    def from_record(cls, record: UserRecord) -> "SenderProfile":
        return cls(
            user_id=record.user_id,
            first_name=record.info.name or "",
            username=record.info.username,
        )


__all__ = [
    "AdminInputState",
    "LoggedMessage",
    "SenderProfile",
    "UserInfo",
    "UserRecord",
    "VerificationState",
]
