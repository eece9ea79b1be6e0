from __future__ import annotations

import asyncio
import json

from fakes import FakeClock, FakeGateway, MemoryConfigStore

from relaybot.models import UserRecord
from relaybot.services.admins import AdminDirectory, parse_admin_ids
from relaybot.services.auto_reply import BusyNotifier, find_auto_reply
from relaybot.services.config_cache import ConfigCache
from relaybot.texts import messages as msg


class _Users:
    def __init__(self) -> None:
        self.updates: list[tuple[str, dict]] = []

    async def update(self, user_id: str, **changes) -> None:
        self.updates.append((user_id, changes))


def _settings(entries: dict[str, str]) -> ConfigCache:
    return ConfigCache(MemoryConfigStore(entries))


def test_parse_admin_ids_accepts_both_comma_styles() -> None:
    assert parse_admin_ids("1, 2，3,,") == frozenset({"1", "2", "3"})
    assert parse_admin_ids(None) == frozenset()
    assert parse_admin_ids("") == frozenset()


def test_admin_directory_merges_co_admins() -> None:
    directory = AdminDirectory(["42"], _settings({"authorized_admins": '["55", 66, " "]'}))

    async def scenario() -> None:
        assert directory.is_primary(42)
        assert not directory.is_primary("55")
        assert await directory.is_authorized("55")
        assert await directory.is_authorized(66)
        assert not await directory.is_authorized("77")
        assert not await directory.is_authorized(None)
        assert await directory.all_ids() == {"42", "55", "66"}

    asyncio.run(scenario())


def test_first_matching_rule_wins() -> None:
    rules = [
        {"keywords": "[", "response": "broken"},
        {"keywords": "price|cost", "response": "See the pricing page"},
        {"keywords": "cost", "response": "never reached"},
        "not a rule",
    ]
    settings = _settings({"keyword_responses": json.dumps(rules)})

    async def scenario() -> None:
        assert await find_auto_reply(settings, "What is the COST?") == "See the pricing page"
        assert await find_auto_reply(settings, "hello") is None

    asyncio.run(scenario())


def test_busy_notice_is_rate_limited() -> None:
    gateway = FakeGateway()
    users = _Users()
    clock = FakeClock()
    settings = _settings({"busy_mode": "true", "busy_msg": "Back tomorrow"})
    notifier = BusyNotifier(gateway, users, settings, clock=clock)
    record = UserRecord(user_id="7")

    async def scenario() -> None:
        assert await notifier.maybe_notify(record) is True
        assert await notifier.maybe_notify(record) is False
        clock.advance(300)
        assert await notifier.maybe_notify(record) is True

    asyncio.run(scenario())
    assert gateway.texts_to("7") == [f"{msg.BUSY_PREFIX}Back tomorrow"] * 2
    assert users.updates[0] == ("7", {"info": {"last_busy_reply": int(clock.now) - 300}})


def test_busy_notice_off_by_default() -> None:
    gateway = FakeGateway()
    notifier = BusyNotifier(gateway, _Users(), _settings({}))

    async def scenario() -> None:
        assert await notifier.maybe_notify(UserRecord(user_id="7")) is False

    asyncio.run(scenario())
    assert gateway.sent == []
