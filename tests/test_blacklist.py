from __future__ import annotations

import asyncio
import json
from pathlib import Path

from fakes import GROUP_ID, THREAD_GONE, build_services

from relaybot.keyboards import UNBLOCK_CALLBACK
from relaybot.models import SenderProfile
from relaybot.services.blacklist import Verdict
from relaybot.texts import messages as msg

PROFILE = SenderProfile(user_id="7", first_name="Alice", username="alice")


def _config(threshold: str = "3") -> dict[str, str]:
    return {
        "block_keywords": json.dumps(["(unclosed", "spam", "casino"]),
        "block_threshold": threshold,
    }


def test_blocks_exactly_at_threshold(tmp_path: Path) -> None:
    async def scenario() -> None:
        services = await build_services(tmp_path, config=_config("3"))
        gate = services.blacklist
        record = await services.repository.get_or_create("7")

        first = await gate.check(record, PROFILE, "buy SPAM now")
        second = await gate.check(record, PROFILE, "casino")
        assert (first.verdict, first.count) == (Verdict.WARNED, 1)
        assert (second.verdict, second.count) == (Verdict.WARNED, 2)
        assert record.is_blocked is False
        assert services.gateway.texts_to("7")[-1] == msg.KEYWORD_WARNING.format(count=2, threshold=3)

        third = await gate.check(record, PROFILE, "spam again")
        assert third.verdict is Verdict.BLOCKED
        stored = await services.repository.get_or_create("7")
        assert stored.is_blocked is True
        assert stored.block_count == 3
        assert services.gateway.texts_to("7")[-1] == msg.KEYWORD_BLOCKED

        blacklist_thread = await services.settings.get("blocked_topic_id")
        assert blacklist_thread
        assert services.gateway.threads == [(GROUP_ID, msg.BLACKLIST_THREAD_NAME, blacklist_thread)]
        card = services.gateway.sent[-2]
        assert card.thread_id == blacklist_thread
        assert card.reply_markup.inline_keyboard[0][0].callback_data == f"{UNBLOCK_CALLBACK}:7"
        assert stored.info.blacklist_msg_id == card.message_id

    asyncio.run(scenario())


def test_clean_message_leaves_count_untouched(tmp_path: Path) -> None:
    async def scenario() -> None:
        services = await build_services(tmp_path, config=_config())
        record = await services.repository.get_or_create("7")
        result = await services.blacklist.check(record, PROFILE, "hello there")
        assert result.passed
        assert (await services.repository.get_or_create("7")).block_count == 0
        assert services.gateway.sent == []

    asyncio.run(scenario())


def test_empty_text_passes(tmp_path: Path) -> None:
    async def scenario() -> None:
        services = await build_services(tmp_path, config=_config())
        record = await services.repository.get_or_create("7")
        assert (await services.blacklist.check(record, PROFILE, None)).passed

    asyncio.run(scenario())


def test_release_deletes_card(tmp_path: Path) -> None:
    async def scenario() -> None:
        services = await build_services(tmp_path, config=_config("1"))
        record = await services.repository.get_or_create("7")
        await services.blacklist.check(record, PROFILE, "spam")
        card_id = record.info.blacklist_msg_id
        assert card_id

        await services.blacklist.release(record)
        assert services.gateway.deleted == [(GROUP_ID, card_id)]
        assert (await services.repository.get_or_create("7")).info.blacklist_msg_id is None

    asyncio.run(scenario())


def test_release_with_missing_thread_clears_binding(tmp_path: Path) -> None:
    async def scenario() -> None:
        services = await build_services(tmp_path, config=_config("1"))
        record = await services.repository.get_or_create("7")
        await services.blacklist.check(record, PROFILE, "spam")
        services.gateway.fail("delete_message", THREAD_GONE)

        await services.blacklist.release(record)
        assert await services.settings.get("blocked_topic_id") == ""
        assert record.info.blacklist_msg_id is None

    asyncio.run(scenario())
