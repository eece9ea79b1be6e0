"""In-memory doubles shared by the test-suite."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Optional

from relaybot.handlers import setup_router
from relaybot.infrastructure.concurrency import SingleFlight
from relaybot.services.admins import AdminDirectory
from relaybot.services.auto_reply import BusyNotifier
from relaybot.services.blacklist import BlacklistGate
from relaybot.services.challenge import ChallengeConfig, ChallengeVerifier
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import GatewayError, MessagingGateway
from relaybot.services.inbox import InboxAggregator
from relaybot.services.relay import TopicRelay
from relaybot.services.storage import Repository, RepositoryMessageLog
from relaybot.services.storage_base import ConfigStore
from relaybot.services.verification import VerificationService

GROUP_ID = "-1001234567890"
ADMIN_ID = "42"
THREAD_GONE = "Bad Request: message thread not found"


@dataclass
class SentText:
    chat_id: str
    text: str
    thread_id: Optional[str] = None
    reply_markup: Any = None
    reply_to: Optional[int] = None
    message_id: int = 0


class FakeGateway(MessagingGateway):
    def __init__(self) -> None:
        self.sent: list[SentText] = []
        self.media: list[tuple[str, str, str, Optional[str]]] = []
        self.copies: list[tuple[str, str, int, Optional[str]]] = []
        self.threads: list[tuple[str, str, str]] = []
        self.pinned: list[tuple[str, int]] = []
        self.deleted: list[tuple[str, int]] = []
        self.edited: list[tuple[str, int, str]] = []
        self.markups: list[tuple[str, int, Any]] = []
        self.answers: list[tuple[str, Optional[str]]] = []
        self.failures: dict[str, str] = {}
        self.create_delay = 0.0
        self._next_message_id = 1000
        self._next_thread_id = 500

    def fail(self, method: str, reason: str) -> None:
        self.failures[method] = reason

    def _check(self, method: str) -> None:
        reason = self.failures.get(method)
        if reason is not None:
            raise GatewayError(reason)

    def _new_id(self) -> int:
        self._next_message_id += 1
        return self._next_message_id

    def texts_to(self, chat_id: str, thread_id: Optional[str] = None) -> list[str]:
        return [
            item.text
            for item in self.sent
            if item.chat_id == chat_id and (thread_id is None or item.thread_id == thread_id)
        ]

    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: Optional[str] = None,
        reply_markup: Any = None,
        reply_to: Optional[int] = None,
        silent: bool = False,
        html: bool = True,
    ) -> int:
        self._check("send_text")
        message_id = self._new_id()
        self.sent.append(SentText(chat_id, text, thread_id, reply_markup, reply_to, message_id))
        return message_id

    async def send_media(
        self,
        chat_id: str,
        media_type: str,
        file_id: str,
        *,
        caption: Optional[str] = None,
        thread_id: Optional[str] = None,
    ) -> int:
        self._check("send_media")
        self.media.append((chat_id, media_type, file_id, caption))
        return self._new_id()

    async def copy_message(
        self,
        chat_id: str,
        from_chat_id: str,
        message_id: int,
        *,
        thread_id: Optional[str] = None,
    ) -> int:
        self._check("copy_message")
        self.copies.append((chat_id, from_chat_id, message_id, thread_id))
        return self._new_id()

    async def create_thread(self, chat_id: str, name: str) -> str:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        self._check("create_thread")
        self._next_thread_id += 1
        thread_id = str(self._next_thread_id)
        self.threads.append((chat_id, name, thread_id))
        return thread_id

    async def pin_message(self, chat_id: str, message_id: int) -> None:
        self._check("pin_message")
        self.pinned.append((chat_id, message_id))

    async def delete_message(self, chat_id: str, message_id: int) -> None:
        self._check("delete_message")
        self.deleted.append((chat_id, message_id))

    async def edit_message(self, chat_id: str, message_id: int, text: str, *, reply_markup: Any = None) -> None:
        self._check("edit_message")
        self.edited.append((chat_id, message_id, text))

    async def edit_markup(self, chat_id: str, message_id: int, reply_markup: Any) -> None:
        self._check("edit_markup")
        self.markups.append((chat_id, message_id, reply_markup))

    async def answer_interaction(
        self, interaction_id: str, text: Optional[str] = None, *, show_alert: bool = False
    ) -> None:
        self.answers.append((interaction_id, text))


class MemoryConfigStore(ConfigStore):
    def __init__(self, entries: Optional[dict[str, str]] = None) -> None:
        self.entries: dict[str, str] = dict(entries or {})
        self.list_calls = 0

    async def list_all(self) -> dict[str, str]:
        self.list_calls += 1
        return dict(self.entries)

    async def put(self, key: str, value: str) -> None:
        self.entries[key] = value

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_user(user_id: int | str = 7, *, first_name: str = "Alice", username: Optional[str] = "alice", is_bot: bool = False):
    return SimpleNamespace(
        id=int(user_id),
        first_name=first_name,
        last_name=None,
        username=username,
        is_bot=is_bot,
    )


def make_message(
    user_id: int | str = 7,
    *,
    message_id: int = 10,
    chat_id: int | str | None = None,
    chat_type: str = "private",
    from_user: Any = None,
    thread_id: Optional[int] = None,
    **content: Any,
) -> SimpleNamespace:
    """A duck-typed stand-in for an aiogram ``Message``."""

    fields: dict[str, Any] = {
        "text": None,
        "caption": None,
        "photo": None,
        "video": None,
        "document": None,
        "audio": None,
        "voice": None,
        "sticker": None,
        "animation": None,
        "forward_origin": None,
        "entities": None,
        "caption_entities": None,
    }
    fields.update(content)
    return SimpleNamespace(
        message_id=message_id,
        chat=SimpleNamespace(id=int(chat_id if chat_id is not None else user_id), type=chat_type),
        from_user=from_user if from_user is not None else make_user(user_id),
        message_thread_id=thread_id,
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        **fields,
    )


def make_callback(data: str, *, from_id: int | str = ADMIN_ID, message_id: int = 900, thread_id: Optional[int] = None):
    message = SimpleNamespace(
        message_id=message_id,
        chat=SimpleNamespace(id=int(GROUP_ID), type="supergroup"),
        message_thread_id=thread_id,
    )
    return SimpleNamespace(id="cb-1", data=data, from_user=make_user(from_id), message=message)


@dataclass
class Services:
    gateway: FakeGateway
    repository: Repository
    settings: ConfigCache
    admins: AdminDirectory
    inbox: InboxAggregator
    relay: TopicRelay
    blacklist: BlacklistGate
    verifier: ChallengeVerifier
    verification: VerificationService
    busy: BusyNotifier
    clock: FakeClock
    router: Any = None
    admin_starts: list[str] = field(default_factory=list)


async def build_services(
    tmp_path: Path,
    *,
    config: Optional[dict[str, str]] = None,
    challenge: Optional[ChallengeConfig] = None,
    verifier_client: Any = None,
    clock: Optional[FakeClock] = None,
) -> Services:
    repository = Repository(tmp_path / "relay.db")
    await repository.init()
    for key, value in (config or {}).items():
        await repository.put(key, value)

    clock = clock or FakeClock()
    gateway = FakeGateway()
    settings = ConfigCache(repository, ttl_seconds=60)
    admins = AdminDirectory({ADMIN_ID}, settings)
    inbox = InboxAggregator(gateway, repository, settings, admin_group_id=GROUP_ID, clock=clock)
    relay = TopicRelay(
        gateway,
        repository,
        RepositoryMessageLog(repository),
        settings,
        inbox,
        admins,
        admin_group_id=GROUP_ID,
        single_flight=SingleFlight(repository, namespace="topic"),
    )
    blacklist = BlacklistGate(gateway, repository, settings, admin_group_id=GROUP_ID)
    verifier = ChallengeVerifier(challenge or ChallengeConfig(), client=verifier_client)
    verification = VerificationService(gateway, repository, settings, verifier, blacklist, relay)
    busy = BusyNotifier(gateway, repository, settings, clock=clock)
    services = Services(
        gateway=gateway,
        repository=repository,
        settings=settings,
        admins=admins,
        inbox=inbox,
        relay=relay,
        blacklist=blacklist,
        verifier=verifier,
        verification=verification,
        busy=busy,
        clock=clock,
    )

    async def _on_admin_start(chat_id: str) -> None:
        services.admin_starts.append(chat_id)

    services.router = setup_router(
        gateway=gateway,
        users=repository,
        settings=settings,
        admins=admins,
        verification=verification,
        blacklist=blacklist,
        relay=relay,
        inbox=inbox,
        busy=busy,
        admin_group_id=GROUP_ID,
        on_admin_start=_on_admin_start,
    )
    return services


def get_message_handler(router: Any, name: str) -> Callable[..., Any]:
    for handler in router.message.handlers:
        if handler.callback.__name__ == name:
            return handler.callback
    raise AssertionError(f"Message handler {name} not found")


def get_edit_handler(router: Any, name: str) -> Callable[..., Any]:
    for handler in router.edited_message.handlers:
        if handler.callback.__name__ == name:
            return handler.callback
    raise AssertionError(f"Edit handler {name} not found")


def get_callback_handler(router: Any, name: str) -> Callable[..., Any]:
    for handler in router.callback_query.handlers:
        if handler.callback.__name__ == name:
            return handler.callback
    raise AssertionError(f"Callback handler {name} not found")


async def drain() -> None:
    """Let fire-and-forget sends run."""

    for _ in range(3):
        await asyncio.sleep(0)
