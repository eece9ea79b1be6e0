"""Per-user verification state machine."""

from __future__ import annotations

import json
from typing import Any, Optional

from relaybot import cards
from relaybot.keyboards import challenge_keyboard
from relaybot.models import SenderProfile, UserRecord, VerificationState
from relaybot.services.blacklist import BlacklistGate
from relaybot.services.challenge import ChallengeVerifier
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import GatewayError, MessagingGateway, best_effort
from relaybot.services.relay import TopicRelay
from relaybot.services.storage_base import UserStore
from relaybot.texts import messages as msg
from logger import get_logger, info_domain

logger = get_logger(__name__)

WELCOME_MEDIA_TYPES = {"photo", "video", "animation"}


def parse_welcome(raw: str) -> Optional[dict[str, Any]]:
    """Return a media welcome spec when ``raw`` is one, else None."""

    stripped = raw.strip()
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or data.get("type") not in WELCOME_MEDIA_TYPES or not data.get("file_id"):
        return None
    return data


def fill_placeholders(template: str, profile: SenderProfile) -> str:
    link = cards.mention_link(profile.user_id, profile.first_name or msg.DEFAULT_NAME)
    return template.replace("{name}", link).replace("{user}", link)


class VerificationService:
    """Moves users through the captcha and security-question layers."""

    def __init__(
        self,
        gateway: MessagingGateway,
        users: UserStore,
        settings: ConfigCache,
        challenge: ChallengeVerifier,
        blacklist: BlacklistGate,
        relay: TopicRelay,
    ) -> None:
        self._gateway = gateway
        self._users = users
        self._settings = settings
        self._challenge = challenge
        self._blacklist = blacklist
        self._relay = relay

    async def captcha_active(self) -> bool:
        if not await self._settings.get_bool("enable_verify"):
            return False
        mode = await self._settings.get("captcha_mode")
        return self._challenge.is_configured(mode)

    async def qa_active(self) -> bool:
        return await self._settings.get_bool("enable_qa_verify")

    async def start(self, record: UserRecord, profile: SenderProfile) -> None:
        """Welcome flow for ``/start`` and for a user's first contact."""

        if record.topic_id and not await self._relay.send_info_card(record, profile):
            await self._users.update(record.user_id, topic_id=None)
            record.topic_id = None

        await self.send_welcome(profile)
        if record.is_verified:
            return

        if await self.captcha_active():
            await self._set_state(record, VerificationState.PENDING_CAPTCHA)
            await self.send_challenge(record.user_id)
        elif await self.qa_active():
            await self._set_state(record, VerificationState.PENDING_QA)
            await self._send_question(record.user_id, msg.QUESTION_PROMPT)
        else:
            await self._set_state(record, VerificationState.VERIFIED)
            await best_effort(self._gateway.send_text(record.user_id, msg.VERIFIED), label="verified notice")

    async def reenter(self, record: UserRecord, profile: SenderProfile) -> None:
        """Handle ``/start``; a blocked user is unblocked and verified again."""

        if record.is_blocked:
            await self._users.update(record.user_id, is_blocked=False, block_count=0)
            record.is_blocked = False
            record.block_count = 0
            await self._blacklist.release(record)
            await self._relay.update_card_markup(record)
            await self._set_state(record, VerificationState.NEW)
            info_domain("verification", "Blocked user re-entered", stage="USER_REENTERED", user_id=record.user_id)
        await self.start(record, profile)

    async def promote_admin(self, record: UserRecord) -> None:
        if not record.is_verified:
            await self._set_state(record, VerificationState.VERIFIED)

    async def admit(self, record: UserRecord, profile: SenderProfile, message: Any) -> bool:
        """Apply the toggle policy and state to a private message.

        Returns True when the message may continue to the relay.
        """

        captcha = await self.captcha_active()
        qa = await self.qa_active()

        if not captcha and not qa:
            if not record.is_verified:
                await self._set_state(record, VerificationState.VERIFIED)
            return True

        if not captcha and record.state in (VerificationState.NEW, VerificationState.PENDING_CAPTCHA):
            await self._set_state(record, VerificationState.PENDING_QA)
            await self.start(record, profile)
            return False

        if record.state is VerificationState.NEW:
            await self.start(record, profile)
            return False
        if record.state is VerificationState.PENDING_CAPTCHA:
            await self.send_challenge(record.user_id)
            return False
        if record.state is VerificationState.PENDING_QA:
            await self.check_answer(record, getattr(message, "text", None) or "")
            return False
        return True

    async def check_answer(self, record: UserRecord, text: str) -> bool:
        expected = await self._settings.get("verif_a")
        if text.strip() == expected.strip():
            await self._set_state(record, VerificationState.VERIFIED)
            await best_effort(self._gateway.send_text(record.user_id, msg.VERIFIED), label="verified notice")
            return True
        await best_effort(self._gateway.send_text(record.user_id, msg.WRONG_ANSWER), label="wrong answer")
        return False

    async def complete_challenge(self, user_id: str, passed: bool) -> bool:
        """Advance a user whose challenge token was validated."""

        if not passed:
            return False
        record = await self._users.get_or_create(user_id)
        if record.state not in (VerificationState.NEW, VerificationState.PENDING_CAPTCHA):
            return True
        if await self.qa_active():
            await self._set_state(record, VerificationState.PENDING_QA)
            await self._send_question(user_id, msg.CHALLENGE_PASSED_NEXT_QUESTION)
        else:
            await self._set_state(record, VerificationState.VERIFIED)
            await best_effort(self._gateway.send_text(user_id, msg.VERIFIED), label="verified notice")
        info_domain("verification", "Challenge passed", stage="CHALLENGE_PASSED", user_id=user_id)
        return True

    async def send_challenge(self, user_id: str) -> None:
        await best_effort(
            self._gateway.send_text(
                user_id,
                msg.CHALLENGE_PROMPT,
                reply_markup=challenge_keyboard(self._challenge.page_url(user_id)),
            ),
            label="challenge prompt",
        )

    async def send_welcome(self, profile: SenderProfile) -> None:
        raw = await self._settings.get("welcome_msg")
        media = parse_welcome(raw)
        try:
            if media is not None:
                caption = fill_placeholders(str(media.get("caption") or ""), profile)
                await self._gateway.send_media(
                    profile.user_id, media["type"], str(media["file_id"]), caption=caption or None
                )
            else:
                await self._gateway.send_text(profile.user_id, fill_placeholders(raw, profile))
        except GatewayError as exc:
            logger.warning("Welcome for %s failed: %s", profile.user_id, exc.reason)
            await best_effort(
                self._gateway.send_text(profile.user_id, msg.WELCOME_FALLBACK),
                label="welcome fallback",
            )

    async def _send_question(self, user_id: str, template: str) -> None:
        question = await self._settings.get("verif_q")
        await best_effort(
            self._gateway.send_text(user_id, template.format(question=cards.escape(question))),
            label="security question",
        )

    async def _set_state(self, record: UserRecord, state: VerificationState) -> None:
        if record.state is state:
            return
        await self._users.update(record.user_id, state=state)
        record.state = state


__all__ = ["VerificationService", "fill_placeholders", "parse_welcome"]
