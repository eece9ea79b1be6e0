"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from relaybot.services.admins import parse_admin_ids
from relaybot.services.challenge import ChallengeConfig

RUN_MODES = ("polling", "webhook")
DEFAULT_DATABASE_PATH = "relay.db"
DEFAULT_WEBHOOK_PATH = "/webhook"


@dataclass(frozen=True, slots=True)
class Config:
    """Runtime configuration for the relay bot."""

    bot_token: str
    admin_group_id: str
    admin_ids: frozenset[str]
    challenge: ChallengeConfig
    database_path: Path
    config_cache_ttl_sec: int
    run_mode: str
    webhook_path: str
    web_host: str
    web_port: int
    log_level: Optional[str]

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.challenge.public_url:
            return None
        return f"{self.challenge.public_url.rstrip('/')}{self.webhook_path}"


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None:
        raise RuntimeError(f"Environment variable {name} is required")
    stripped = value.strip()
    if not stripped:
        raise RuntimeError(f"Environment variable {name} must not be empty")
    return stripped


def _optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    if not stripped:
        return default
    return stripped


def _parse_int_env(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer value") from None
    if minimum is not None and value < minimum:
        raise RuntimeError(f"{name} must be greater than or equal to {minimum}")
    return value


def _optional_url(name: str) -> str:
    value = _optional_env(name)
    if value is None:
        return ""
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise RuntimeError(f"{name} must be an http(s) URL")
    return value.rstrip("/")


def _parse_group_id(raw: str) -> str:
    try:
        int(raw)
    except ValueError:
        raise RuntimeError("ADMIN_GROUP_ID must be a numeric chat id") from None
    return raw


def load_config(env_file: str | None = None) -> Config:
    """Load configuration from the provided .env file (or default location)."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    run_mode = (_optional_env("RUN_MODE", "polling") or "polling").lower()
    if run_mode not in RUN_MODES:
        raise RuntimeError(f"RUN_MODE must be one of: {', '.join(RUN_MODES)}")

    webhook_path = _optional_env("WEBHOOK_PATH", DEFAULT_WEBHOOK_PATH) or DEFAULT_WEBHOOK_PATH
    if not webhook_path.startswith("/"):
        webhook_path = f"/{webhook_path}"

    challenge = ChallengeConfig(
        public_url=_optional_url("PUBLIC_URL"),
        turnstile_site_key=_optional_env("TURNSTILE_SITE_KEY", "") or "",
        turnstile_secret_key=_optional_env("TURNSTILE_SECRET_KEY", "") or "",
        recaptcha_site_key=_optional_env("RECAPTCHA_SITE_KEY", "") or "",
        recaptcha_secret_key=_optional_env("RECAPTCHA_SECRET_KEY", "") or "",
    )
    if run_mode == "webhook" and not challenge.public_url:
        raise RuntimeError("PUBLIC_URL is required when RUN_MODE=webhook")

    return Config(
        bot_token=_require_env("BOT_TOKEN"),
        admin_group_id=_parse_group_id(_require_env("ADMIN_GROUP_ID")),
        admin_ids=parse_admin_ids(_optional_env("ADMIN_IDS")),
        challenge=challenge,
        database_path=Path(_optional_env("DATABASE_PATH", DEFAULT_DATABASE_PATH) or DEFAULT_DATABASE_PATH),
        config_cache_ttl_sec=_parse_int_env("CONFIG_CACHE_TTL_SEC", 60, minimum=1),
        run_mode=run_mode,
        webhook_path=webhook_path,
        web_host=_optional_env("WEB_HOST", "0.0.0.0") or "0.0.0.0",
        web_port=_parse_int_env("WEB_PORT", 8080, minimum=1),
        log_level=_optional_env("LOG_LEVEL"),
    )


__all__ = ["Config", "RUN_MODES", "load_config"]
