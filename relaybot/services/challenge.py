"""Token validation against the external CAPTCHA providers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from logger import get_logger

logger = get_logger(__name__)

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"

MODE_TURNSTILE = "turnstile"
MODE_RECAPTCHA = "recaptcha"


class ChallengeError(RuntimeError):
    """Raised when the provider cannot be reached or answers garbage."""


@dataclass(frozen=True, slots=True)
class ChallengeConfig:
    """Keys and public address of the verification page."""

    public_url: str = ""
    turnstile_site_key: str = ""
    turnstile_secret_key: str = ""
    recaptcha_site_key: str = ""
    recaptcha_secret_key: str = ""


class ChallengeVerifier:
    """Validates challenge tokens; callers only see pass or fail."""

    def __init__(
        self,
        config: ChallengeConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout_seconds

    def site_key(self, mode: str) -> str:
        if mode == MODE_RECAPTCHA:
            return self._config.recaptcha_site_key
        return self._config.turnstile_site_key

    def is_configured(self, mode: str) -> bool:
        return bool(self._config.public_url and self.site_key(mode))

    def page_url(self, user_id: str) -> str:
        base = self._config.public_url.rstrip("/")
        return f"{base}/verify?{urlencode({'user_id': user_id})}"

    async def verify(self, token: str, mode: str) -> bool:
        """Return True when the provider accepts ``token``.

        Transport failures count as a failed challenge.
        """

        if not token:
            return False
        try:
            payload = await self._siteverify(token, mode)
        except ChallengeError as exc:
            logger.warning("Challenge validation failed: %s", exc, extra={"stage": "CHALLENGE_ERROR"})
            return False
        return bool(payload.get("success"))

    async def _siteverify(self, token: str, mode: str) -> dict[str, Any]:
        client = self._ensure_client()
        try:
            if mode == MODE_RECAPTCHA:
                response = await client.post(
                    RECAPTCHA_VERIFY_URL,
                    data={"secret": self._config.recaptcha_secret_key, "response": token},
                )
            else:
                response = await client.post(
                    TURNSTILE_VERIFY_URL,
                    json={"secret": self._config.turnstile_secret_key, "response": token},
                )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ChallengeError(str(exc)) from exc
        if not isinstance(payload, dict):
            raise ChallengeError("Unexpected siteverify payload")
        return payload

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = httpx.Timeout(self._timeout, connect=self._timeout)
            self._client = httpx.AsyncClient(timeout=timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "ChallengeConfig",
    "ChallengeError",
    "ChallengeVerifier",
    "MODE_RECAPTCHA",
    "MODE_TURNSTILE",
]
