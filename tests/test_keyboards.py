from __future__ import annotations

from relaybot.cards import escape, format_timestamp, preview, profile_card, topic_name
from relaybot.keyboards import (
    BLOCK_CALLBACK,
    INBOX_DISMISS_CALLBACK,
    NOTE_SET_CALLBACK,
    PIN_CARD_CALLBACK,
    UNBLOCK_CALLBACK,
    blacklist_keyboard,
    challenge_keyboard,
    inbox_keyboard,
    profile_card_keyboard,
    thread_link,
)
from relaybot.models import SenderProfile, UserRecord
from relaybot.texts import messages as msg


def test_profile_card_keyboard_toggles_block_button() -> None:
    keyboard = profile_card_keyboard("7", is_blocked=False)

    assert len(keyboard.inline_keyboard) == 2
    toggle = keyboard.inline_keyboard[0][0]
    assert toggle.text == msg.BUTTON_BLOCK
    assert toggle.callback_data == f"{BLOCK_CALLBACK}:7"
    note, pin = keyboard.inline_keyboard[1]
    assert note.callback_data == f"{NOTE_SET_CALLBACK}:7"
    assert pin.callback_data == f"{PIN_CARD_CALLBACK}:7"

    blocked = profile_card_keyboard("7", is_blocked=True)
    assert blocked.inline_keyboard[0][0].text == msg.BUTTON_UNBLOCK
    assert blocked.inline_keyboard[0][0].callback_data == f"{UNBLOCK_CALLBACK}:7"


def test_blacklist_keyboard_offers_unblock_only() -> None:
    keyboard = blacklist_keyboard("7")
    assert [[button.callback_data for button in row] for row in keyboard.inline_keyboard] == [
        [f"{UNBLOCK_CALLBACK}:7"]
    ]


def test_thread_link_strips_supergroup_prefix() -> None:
    assert thread_link("-1001234567890", "321") == "https://t.me/c/1234567890/321"
    assert thread_link("-555", "9") == "https://t.me/c/-555/9"


def test_inbox_and_challenge_keyboards() -> None:
    inbox = inbox_keyboard("-1001234567890", "321", "7")
    jump, dismiss = inbox.inline_keyboard[0]
    assert jump.text == msg.BUTTON_JUMP
    assert jump.url == "https://t.me/c/1234567890/321"
    assert dismiss.callback_data == f"{INBOX_DISMISS_CALLBACK}:7"

    challenge = challenge_keyboard("https://relay.example.com/verify?user_id=7")
    button = challenge.inline_keyboard[0][0]
    assert button.text == msg.CHALLENGE_BUTTON
    assert button.web_app.url == "https://relay.example.com/verify?user_id=7"


def test_topic_name_is_capped() -> None:
    assert topic_name(SenderProfile(user_id="7", first_name="Alice", last_name="Liddell")) == "Alice Liddell | 7"
    long_name = topic_name(SenderProfile(user_id="7", first_name="A" * 200))
    assert len(long_name) == 128


def test_preview_and_escape() -> None:
    assert preview("short") == "short"
    assert preview("a" * 25) == "a" * 20 + "..."
    assert preview(None) == msg.INBOX_MEDIA_PREVIEW
    assert preview("") == msg.INBOX_MEDIA_PREVIEW
    assert escape("<b>&") == "&lt;b&gt;&amp;"
    assert escape(None) == ""


def test_format_timestamp_uses_utc_plus_eight() -> None:
    assert format_timestamp(1_700_000_000) == "2023-11-15 06:13:20"


def test_profile_card_renders_note_and_username() -> None:
    record = UserRecord(user_id="7")
    record.info.note = "<vip>"
    card = profile_card(SenderProfile(user_id="7", first_name="Al<i>ce", username="alice"), record, 1_700_000_000)

    assert card.startswith(msg.PROFILE_CARD_TITLE)
    assert "Al&lt;i&gt;ce" in card
    assert '<a href="tg://user?id=7">@alice</a>' in card
    assert "&lt;vip&gt;" in card
    assert "2023-11-15 06:13:20" in card

    bare = profile_card(SenderProfile(user_id="8", first_name="Bob"), UserRecord(user_id="8"), 1_700_000_000)
    assert msg.PROFILE_NO_USERNAME in bare
    assert "Note" not in bare
