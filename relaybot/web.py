"""HTTP endpoints: challenge token submission, health and webhook."""

from __future__ import annotations

from typing import Any, Optional

from aiogram import Bot, Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from relaybot.services.challenge import ChallengeVerifier
from relaybot.services.config_cache import ConfigCache
from relaybot.services.verification import VerificationService
from logger import get_logger

logger = get_logger(__name__)

HEALTH_TEXT = "relay bot is running"


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response = web.Response(status=204)
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Max-Age"] = "86400"
    return response


def _parse_submission(payload: Any) -> tuple[Optional[str], Optional[str]]:
    if not isinstance(payload, dict):
        return None, None
    token = payload.get("token")
    user_id = payload.get("userId")
    if not token or user_id in (None, ""):
        return None, None
    return str(token), str(user_id)


async def handle_submit_token(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        return web.json_response({"success": False, "error": "invalid_json"}, status=400)
    token, user_id = _parse_submission(payload)
    if token is None or user_id is None:
        return web.json_response({"success": False, "error": "token_and_user_required"}, status=400)

    settings: ConfigCache = request.app["settings"]
    verifier: ChallengeVerifier = request.app["verifier"]
    verification: VerificationService = request.app["verification"]

    mode = await settings.get("captcha_mode")
    passed = await verifier.verify(token, mode)
    await verification.complete_challenge(user_id, passed)
    logger.info(
        "Challenge submission processed",
        user_id=user_id,
        stage="CHALLENGE_SUBMITTED",
        payload={"passed": passed},
    )
    return web.json_response({"success": passed})


async def handle_health(request: web.Request) -> web.Response:
    return web.Response(text=HEALTH_TEXT)


def create_app(
    *,
    settings: ConfigCache,
    verifier: ChallengeVerifier,
    verification: VerificationService,
    dispatcher: Optional[Dispatcher] = None,
    bot: Optional[Bot] = None,
    webhook_path: Optional[str] = None,
) -> web.Application:
    """Build the aiohttp application; the webhook route is added on request."""

    app = web.Application(middlewares=[cors_middleware])
    app["settings"] = settings
    app["verifier"] = verifier
    app["verification"] = verification
    app.router.add_route("GET", "/", handle_health)
    app.router.add_route("POST", "/submit_token", handle_submit_token)
    app.router.add_route("OPTIONS", "/submit_token", handle_submit_token)
    if dispatcher is not None and bot is not None and webhook_path:
        SimpleRequestHandler(dispatcher=dispatcher, bot=bot).register(app, path=webhook_path)
        setup_application(app, dispatcher, bot=bot)
    return app


__all__ = ["create_app", "cors_middleware", "handle_health", "handle_submit_token"]
