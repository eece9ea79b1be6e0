"""Application entry point."""

from __future__ import annotations

import asyncio
import os
import signal
from contextlib import suppress
from logging import Logger

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.types import BotCommand, BotCommandScopeChat, ErrorEvent
from aiohttp import web

from relaybot.config import Config, load_config
from relaybot.handlers import setup_router
from relaybot.infrastructure.concurrency import SingleFlight
from relaybot.infrastructure.logging_middleware import LoggingMiddleware
from relaybot.services.admins import AdminDirectory
from relaybot.services.auto_reply import BusyNotifier
from relaybot.services.blacklist import BlacklistGate
from relaybot.services.challenge import ChallengeVerifier
from relaybot.services.config_cache import ConfigCache
from relaybot.services.gateway import TelegramGateway
from relaybot.services.inbox import InboxAggregator
from relaybot.services.relay import TopicRelay
from relaybot.services.storage import Repository, RepositoryMessageLog
from relaybot.services.verification import VerificationService
from relaybot.texts import messages as msg
from relaybot.web import create_app
from logger import get_logger, info_domain, log_event, setup_logging


def _public_commands() -> list[BotCommand]:
    return [BotCommand(command="start", description=msg.COMMAND_START)]


def _admin_commands() -> list[BotCommand]:
    return [
        BotCommand(command="start", description=msg.COMMAND_ADMIN_START),
        BotCommand(command="help", description=msg.COMMAND_HELP),
    ]


def _install_signal_handlers(stop_event: asyncio.Event, logger: Logger) -> tuple[signal.Signals, ...]:
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        logger.debug("Received %s signal. Shutting down...", sig.name)
        stop_event.set()

    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - platform specific
            continue
    return signals


def _remove_signal_handlers(signals: tuple[signal.Signals, ...]) -> None:
    loop = asyncio.get_running_loop()
    for sig in signals:
        try:
            loop.remove_signal_handler(sig)
        except (ValueError, RuntimeError):  # pragma: no cover - platform specific
            continue


async def _run_polling(dp: Dispatcher, bot: Bot, logger: Logger) -> None:
    stop_event = asyncio.Event()
    stop_waiter = asyncio.create_task(stop_event.wait())
    signals = _install_signal_handlers(stop_event, logger)

    polling_task = asyncio.create_task(
        dp.start_polling(bot, handle_signals=False), name="aiogram-polling"
    )
    polling_task.add_done_callback(lambda _: stop_event.set())

    done, _pending = await asyncio.wait(
        {polling_task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED
    )

    if stop_waiter in done and not polling_task.done():
        logger.debug("Stopping polling loop gracefully...")
        await dp.stop_polling()

    await asyncio.gather(polling_task, return_exceptions=False)

    stop_waiter.cancel()
    with suppress(asyncio.CancelledError):
        await stop_waiter
    _remove_signal_handlers(signals)


async def _wait_for_shutdown(logger: Logger) -> None:
    stop_event = asyncio.Event()
    signals = _install_signal_handlers(stop_event, logger)
    try:
        await stop_event.wait()
    finally:
        _remove_signal_handlers(signals)


async def _start_web(app: web.Application, config: Config) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=config.web_host, port=config.web_port)
    await site.start()
    return runner


async def main() -> None:
    config = load_config()
    setup_logging(config.log_level)
    logger = get_logger("bot.start")

    info_domain(
        "bot.start",
        "Config loaded",
        stage="CONFIG_OK",
        run_mode=config.run_mode,
        admins=len(config.admin_ids),
        captcha_page=bool(config.challenge.public_url),
    )

    repository = Repository(config.database_path)
    await repository.init()
    settings = ConfigCache(repository, ttl_seconds=config.config_cache_ttl_sec, env=os.environ)

    bot = Bot(
        token=config.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    await bot.set_my_commands(_public_commands())

    gateway = TelegramGateway(bot)
    admins = AdminDirectory(config.admin_ids, settings)
    inbox = InboxAggregator(gateway, repository, settings, admin_group_id=config.admin_group_id)
    relay = TopicRelay(
        gateway,
        repository,
        RepositoryMessageLog(repository),
        settings,
        inbox,
        admins,
        admin_group_id=config.admin_group_id,
        single_flight=SingleFlight(repository, namespace="topic"),
    )
    blacklist = BlacklistGate(gateway, repository, settings, admin_group_id=config.admin_group_id)
    verifier = ChallengeVerifier(config.challenge)
    verification = VerificationService(gateway, repository, settings, verifier, blacklist, relay)
    busy = BusyNotifier(gateway, repository, settings)

    async def _register_admin_commands(chat_id: str) -> None:
        try:
            await bot.set_my_commands(_admin_commands(), scope=BotCommandScopeChat(chat_id=int(chat_id)))
        except TelegramAPIError as exc:
            logger.warning("Admin commands not registered for %s: %s", chat_id, exc.message)

    dp = Dispatcher()
    dp.update.middleware(LoggingMiddleware(config.admin_group_id))

    @dp.errors()
    async def _on_error(event: ErrorEvent) -> bool:
        log_event(
            "ERROR",
            "bot.runtime",
            f"Unhandled error: {event.exception!r}",
            stage="HANDLER_ERROR",
            extra={"update_id": event.update.update_id},
            exc_info=event.exception,
        )
        return True

    router = setup_router(
        gateway=gateway,
        users=repository,
        settings=settings,
        admins=admins,
        verification=verification,
        blacklist=blacklist,
        relay=relay,
        inbox=inbox,
        busy=busy,
        admin_group_id=config.admin_group_id,
        on_admin_start=_register_admin_commands,
    )
    dp.include_router(router)

    webhook = config.run_mode == "webhook"
    app = create_app(
        settings=settings,
        verifier=verifier,
        verification=verification,
        dispatcher=dp if webhook else None,
        bot=bot if webhook else None,
        webhook_path=config.webhook_path if webhook else None,
    )
    runner = await _start_web(app, config)

    info_domain("bot.start", "Bot started", stage="BOT_STARTED", run_mode=config.run_mode)
    try:
        if webhook:
            await bot.set_webhook(config.webhook_url or "")
            await _wait_for_shutdown(logger)
        else:
            await bot.delete_webhook(drop_pending_updates=False)
            await _run_polling(dp, bot, logger)
    finally:
        await runner.cleanup()
        await verifier.aclose()
        await bot.session.close()


def run() -> None:
    try:
        asyncio.run(main())
    except Exception as exc:  # noqa: BLE001
        setup_logging()
        log_event(
            "CRITICAL",
            "bot.runtime",
            f"Unhandled exception: {exc}",
            stage="UNHANDLED_EXCEPTION",
            extra={"exception": repr(exc)},
        )
        raise


if __name__ == "__main__":
    run()
