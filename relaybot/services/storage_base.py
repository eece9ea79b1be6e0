"""Storage interfaces consumed by the relay core."""

from __future__ import annotations

import abc
from typing import Any, Optional

from relaybot.models import LoggedMessage, UserRecord


class ConfigStore(abc.ABC):
    """Key/value storage for runtime configuration."""

    @abc.abstractmethod
    async def list_all(self) -> dict[str, str]:
        """Return every stored configuration entry."""

    @abc.abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Insert or replace a configuration entry."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a configuration entry if present."""


class UserStore(abc.ABC):
    """Per-user relay state."""

    @abc.abstractmethod
    async def get_or_create(self, user_id: str) -> UserRecord:
        """Return the stored record, creating a ``new`` one when missing."""

    @abc.abstractmethod
    async def update(self, user_id: str, **fields: Any) -> None:
        """Apply a partial update.

        ``info`` must be a mapping; its keys are merged into the stored
        ``UserInfo`` instead of replacing it.
        """

    @abc.abstractmethod
    async def find_by_topic(self, topic_id: str) -> Optional[str]:
        """Return the user bound to ``topic_id``."""


class MessageLog(abc.ABC):
    """Relayed message texts kept for edit reports."""

    @abc.abstractmethod
    async def put(self, user_id: str, message_id: int, text: str, timestamp: int) -> None:
        """Insert or replace a logged message."""

    @abc.abstractmethod
    async def get(self, user_id: str, message_id: int) -> Optional[LoggedMessage]:
        """Return the logged message if known."""


class LeaseStore(abc.ABC):
    """Short-lived named leases shared by every process using the store."""

    @abc.abstractmethod
    async def acquire_lease(self, name: str, owner: str, ttl_seconds: float) -> bool:
        """Take the lease unless another owner holds an unexpired one."""

    @abc.abstractmethod
    async def release_lease(self, name: str, owner: str) -> None:
        """Drop the lease if ``owner`` still holds it."""


__all__ = ["ConfigStore", "LeaseStore", "MessageLog", "UserStore"]
