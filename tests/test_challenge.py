from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs

import httpx

from relaybot.services.challenge import (
    RECAPTCHA_VERIFY_URL,
    TURNSTILE_VERIFY_URL,
    ChallengeConfig,
    ChallengeVerifier,
)

CONFIG = ChallengeConfig(
    public_url="https://relay.example.com/",
    turnstile_site_key="ts-site",
    turnstile_secret_key="ts-secret",
    recaptcha_site_key="rc-site",
    recaptcha_secret_key="rc-secret",
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_turnstile_posts_json() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    async def scenario() -> None:
        async with _client(handler) as client:
            verifier = ChallengeVerifier(CONFIG, client=client)
            assert await verifier.verify("tok", "turnstile") is True

    asyncio.run(scenario())
    assert str(seen[0].url) == TURNSTILE_VERIFY_URL
    assert json.loads(seen[0].content) == {"secret": "ts-secret", "response": "tok"}


def test_recaptcha_posts_form() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": False})

    async def scenario() -> None:
        async with _client(handler) as client:
            verifier = ChallengeVerifier(CONFIG, client=client)
            assert await verifier.verify("tok", "recaptcha") is False

    asyncio.run(scenario())
    assert str(seen[0].url) == RECAPTCHA_VERIFY_URL
    assert parse_qs(seen[0].content.decode()) == {"secret": ["rc-secret"], "response": ["tok"]}


def test_transport_failure_counts_as_failed_challenge() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async def scenario() -> None:
        async with _client(handler) as client:
            verifier = ChallengeVerifier(CONFIG, client=client)
            assert await verifier.verify("tok", "turnstile") is False

    asyncio.run(scenario())


def test_garbage_response_counts_as_failed_challenge() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    async def scenario() -> None:
        async with _client(handler) as client:
            verifier = ChallengeVerifier(CONFIG, client=client)
            assert await verifier.verify("tok", "turnstile") is False
            assert await verifier.verify("", "turnstile") is False

    asyncio.run(scenario())


def test_page_url_and_configuration() -> None:
    verifier = ChallengeVerifier(CONFIG)
    assert verifier.page_url("7") == "https://relay.example.com/verify?user_id=7"
    assert verifier.is_configured("turnstile")
    assert verifier.is_configured("recaptcha")
    assert not ChallengeVerifier(ChallengeConfig(turnstile_site_key="x")).is_configured("turnstile")
