"""Admin access control helpers."""

from __future__ import annotations

import re
from typing import Iterable

from relaybot.services.config_cache import ConfigCache

_ID_SEPARATORS = re.compile(r"[,，]")


def parse_admin_ids(raw: str | None) -> frozenset[str]:
    """Split a comma separated admin id list (ASCII or full-width commas)."""

    if not raw:
        return frozenset()
    return frozenset(part.strip() for part in _ID_SEPARATORS.split(raw) if part.strip())


class AdminDirectory:
    """Primary admins from the environment plus co-admins from config."""

    def __init__(self, primary_ids: Iterable[str], settings: ConfigCache) -> None:
        self._primary = frozenset(str(item) for item in primary_ids)
        self._settings = settings

    @property
    def primary_ids(self) -> frozenset[str]:
        return self._primary

    def is_primary(self, user_id: int | str | None) -> bool:
        if user_id is None:
            return False
        return str(user_id) in self._primary

    async def authorized_ids(self) -> set[str]:
        entries = await self._settings.get_json_list("authorized_admins")
        return {str(entry).strip() for entry in entries if str(entry).strip()}

    async def is_authorized(self, user_id: int | str | None) -> bool:
        """True for primary admins and for co-admins listed in config."""

        if user_id is None:
            return False
        if self.is_primary(user_id):
            return True
        return str(user_id) in await self.authorized_ids()

    async def all_ids(self) -> set[str]:
        return set(self._primary) | await self.authorized_ids()


__all__ = ["AdminDirectory", "parse_admin_ids"]
