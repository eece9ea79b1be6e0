"""Concurrency primitives used across the application."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from relaybot.services.storage_base import LeaseStore


class SingleFlight:
    """Per-key guard that lets one caller through and drops the rest.

    Holders are tracked in-process; when a lease store is given, the key is
    also leased in the shared store so other processes using the same
    database are excluded too.
    """

    def __init__(
        self,
        lease_store: Optional[LeaseStore] = None,
        *,
        namespace: str = "single_flight",
        lease_ttl_seconds: float = 60.0,
    ) -> None:
        self._lease_store = lease_store
        self._namespace = namespace
        self._lease_ttl = lease_ttl_seconds
        self._held: set[str] = set()
        self._owner = uuid.uuid4().hex

    def is_held(self, key: str) -> bool:
        return key in self._held

    async def try_acquire(self, key: str) -> bool:
        if key in self._held:
            return False
        # Claimed before the first await so concurrent tasks see it.
        self._held.add(key)
        if self._lease_store is None:
            return True
        try:
            acquired = await self._lease_store.acquire_lease(
                self._lease_name(key), self._owner, self._lease_ttl
            )
        except BaseException:
            self._held.discard(key)
            raise
        if not acquired:
            self._held.discard(key)
        return acquired

    async def release(self, key: str) -> None:
        if key not in self._held:
            return
        try:
            if self._lease_store is not None:
                await self._lease_store.release_lease(self._lease_name(key), self._owner)
        finally:
            self._held.discard(key)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[bool]:
        """Yield True when the key was acquired; release it on exit."""

        acquired = await self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                await self.release(key)

    def _lease_name(self, key: str) -> str:
        return f"{self._namespace}:{key}"


__all__ = ["SingleFlight"]
