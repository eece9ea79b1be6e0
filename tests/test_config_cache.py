from __future__ import annotations

import asyncio
import sqlite3

from fakes import FakeClock, MemoryConfigStore

from relaybot.models import AdminInputState
from relaybot.services.config_cache import ADMIN_STATE_PREFIX, ConfigCache, env_key_for


def test_hit_within_ttl_does_not_reload() -> None:
    store = MemoryConfigStore({"welcome_msg": "hi"})
    clock = FakeClock(100.0)
    cache = ConfigCache(store, ttl_seconds=60, clock=clock)

    async def scenario() -> None:
        assert await cache.get("welcome_msg") == "hi"
        store.entries["welcome_msg"] = "changed"
        clock.advance(59)
        assert await cache.get("welcome_msg") == "hi"
        assert store.list_calls == 1

        clock.advance(1)
        assert await cache.get("welcome_msg") == "changed"
        assert store.list_calls == 2

    asyncio.run(scenario())


def test_absent_key_reloads_whole_table_and_falls_back() -> None:
    store = MemoryConfigStore({"busy_mode": "true"})
    cache = ConfigCache(store, clock=FakeClock())

    async def scenario() -> None:
        assert await cache.get("busy_mode") == "true"
        assert await cache.get("verif_a") == "3"
        assert await cache.get("no_such_key") == ""
        assert store.list_calls == 3

    asyncio.run(scenario())


def test_set_invalidates_snapshot() -> None:
    store = MemoryConfigStore()
    cache = ConfigCache(store, clock=FakeClock())

    async def scenario() -> None:
        assert await cache.get("enable_verify") == "true"
        await cache.set("enable_verify", "false")
        assert not cache.is_fresh
        assert await cache.get("enable_verify") == "false"
        await cache.delete("enable_verify")
        assert await cache.get("enable_verify") == "true"

    asyncio.run(scenario())


def test_environment_overrides_compiled_default() -> None:
    env = {"WELCOME_MESSAGE": "from env", "VERIF_ANSWER": "", "VERIF_QUESTION": "2+2?"}
    store = MemoryConfigStore({"verif_q": "stored"})
    cache = ConfigCache(store, env=env, clock=FakeClock())

    async def scenario() -> None:
        assert await cache.get("welcome_msg") == "from env"
        assert await cache.get("verif_a") == "3"
        assert await cache.get("verif_q") == "stored"

    asyncio.run(scenario())


def test_env_key_mapping() -> None:
    assert env_key_for("welcome_msg") == "WELCOME_MESSAGE"
    assert env_key_for("verif_q") == "VERIF_QUESTION"
    assert env_key_for("verif_a") == "VERIF_ANSWER"
    assert env_key_for("enable_admin_receipt") == "ENABLE_ADMIN_RECEIPT"


def test_typed_conversions() -> None:
    store = MemoryConfigStore(
        {
            "flag_yes": "true",
            "flag_upper": "TRUE",
            "block_threshold": "abc",
            "zero": "0",
            "block_keywords": "[not json",
            "keyword_responses": '{"a": 1}',
            "authorized_admins": '["1", "2"]',
        }
    )
    cache = ConfigCache(store, clock=FakeClock())

    async def scenario() -> None:
        assert await cache.get_bool("flag_yes") is True
        assert await cache.get_bool("flag_upper") is False
        assert await cache.get_int("block_threshold", 5) == 5
        assert await cache.get_int("zero", 5) == 5
        assert await cache.get_json_list("block_keywords") == []
        assert await cache.get_json_list("keyword_responses") == []
        assert await cache.get_json_list("authorized_admins") == ["1", "2"]

    asyncio.run(scenario())


def test_admin_state_roundtrip_and_clear() -> None:
    store = MemoryConfigStore({f"{ADMIN_STATE_PREFIX}9": "garbage"})
    cache = ConfigCache(store, clock=FakeClock())

    async def scenario() -> None:
        assert await cache.get_admin_state("9") is None
        await cache.set_admin_state("9", AdminInputState(action="input_note", target="7"))
        state = await cache.get_admin_state("9")
        assert state == AdminInputState(action="input_note", target="7")
        await cache.clear_admin_state("9")
        assert f"{ADMIN_STATE_PREFIX}9" not in store.entries
        assert await cache.get_admin_state("9") is None

    asyncio.run(scenario())


class _LockedStore(MemoryConfigStore):
    def __init__(self, entries=None) -> None:
        super().__init__(entries)
        self.locked = False

    async def list_all(self) -> dict[str, str]:
        if self.locked:
            raise sqlite3.OperationalError("database is locked")
        return await super().list_all()


def test_store_failure_falls_back_to_env_and_defaults() -> None:
    store = _LockedStore()
    store.locked = True
    cache = ConfigCache(store, env={"WELCOME_MESSAGE": "from env"}, clock=FakeClock())

    async def scenario() -> None:
        assert await cache.get("enable_verify") == "true"
        assert await cache.get("welcome_msg") == "from env"
        assert await cache.get("no_such_key") == ""
        assert not cache.is_fresh

    asyncio.run(scenario())


def test_store_failure_keeps_previous_snapshot() -> None:
    store = _LockedStore({"busy_msg": "away"})
    clock = FakeClock(100.0)
    cache = ConfigCache(store, ttl_seconds=60, clock=clock)

    async def scenario() -> None:
        assert await cache.get("busy_msg") == "away"
        store.locked = True
        clock.advance(61)
        assert await cache.get("busy_msg") == "away"

        store.locked = False
        store.entries["busy_msg"] = "back"
        assert await cache.get("busy_msg") == "back"

    asyncio.run(scenario())
