from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar
from logging import Filter
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping

from rich.console import Console
from rich.logging import RichHandler

# Per-update relay context, in the order it is rendered.
_CONTEXT_FIELDS: Dict[str, str] = {
    "request_id": "rid",
    "direction": "dir",
    "user_id": "user",
    "topic_id": "topic",
}
_CONTEXT: Dict[str, ContextVar[Any]] = {
    name: ContextVar(name, default=None) for name in _CONTEXT_FIELDS
}
_RECORD_FIELDS = (*_CONTEXT_FIELDS, "stage", "payload")


class _RelayContextAdapter(logging.LoggerAdapter):
    """Adds the bound relay context and per-call ``stage``/``payload`` to records."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        extra: Dict[str, Any] = dict(kwargs.get("extra") or {})
        extra.setdefault("module_name", self.extra.get("module_name") or self.logger.name)

        for name in _RECORD_FIELDS:
            value = kwargs.pop(name, None)
            if value is None:
                value = extra.pop(name, None)
            if value is None and name in _CONTEXT:
                value = _CONTEXT[name].get()
            if value is not None:
                extra[name] = value

        kwargs["extra"] = extra
        return msg, kwargs


def _stringify_payload(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except TypeError:
        return str(payload)


class _RelayFormatter(logging.Formatter):
    """``[time] [LEVEL] [module] message (rid=.., dir=.., user=.., topic=.., stage=..)``."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        module_name = getattr(record, "module_name", record.name)

        parts = [
            f"{label}={getattr(record, name)}"
            for name, label in _CONTEXT_FIELDS.items()
            if getattr(record, name, None)
        ]
        stage = getattr(record, "stage", None)
        if stage:
            parts.append(f"stage={stage}")
        payload_repr = _stringify_payload(getattr(record, "payload", None))
        if payload_repr:
            parts.append(payload_repr)
        suffix = f" ({', '.join(parts)})" if parts else ""

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"

        time_str = self.formatTime(record, self.datefmt)
        return f"[{time_str}] [{record.levelname}] [{module_name}] {message}{suffix}"


class _MilestoneFilter(Filter):
    """Console shows INFO only for relay milestones; other levels pass."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno != logging.INFO or bool(getattr(record, "domain", False))


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the console and rotating file handlers once per process."""

    root = logging.getLogger()
    if getattr(root, "_relaybot_configured", False):
        return root

    for handler in list(root.handlers):
        root.removeHandler(handler)

    log_level = getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    root.setLevel(log_level if isinstance(log_level, int) else logging.INFO)

    console_handler = RichHandler(
        console=Console(),
        rich_tracebacks=True,
        show_time=False,
        show_level=False,
        show_path=False,
        markup=False,
    )
    console_handler.setFormatter(_RelayFormatter(datefmt="%H:%M:%S"))
    if (os.getenv("LOG_NOISE", "low").strip().lower() or "low") != "debug":
        console_handler.addFilter(_MilestoneFilter())

    logs_dir = Path(os.getenv("LOG_DIR") or Path(__file__).resolve().parent / "logs")
    logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        logs_dir / "relay.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(_RelayFormatter(datefmt="%Y-%m-%d %H:%M:%S"))

    root.addHandler(console_handler)
    root.addHandler(file_handler)

    for noisy in ("aiogram", "aiogram.event", "aiogram.dispatcher", "httpx", "aiohttp.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root._relaybot_configured = True  # type: ignore[attr-defined]
    return root


def get_logger(name: str) -> logging.LoggerAdapter:
    return _RelayContextAdapter(logging.getLogger(name), {"module_name": name})


def info_domain(
    module: str,
    message: str,
    *,
    stage: str | None = None,
    user_id: int | str | None = None,
    **context: Any,
) -> None:
    """Log a relay milestone; these are the INFO lines the console keeps."""

    extra: Dict[str, Any] = {"domain": True}
    if context:
        extra["payload"] = context
    get_logger(module).info(message, extra=extra, stage=stage, user_id=user_id)


def log_event(
    level: str | int,
    module: str,
    message: str,
    *,
    user_id: int | str | None = None,
    stage: str | None = None,
    extra: Mapping[str, Any] | None = None,
    exc_info: Any | None = None,
) -> None:
    level_value = getattr(logging, level.upper(), logging.INFO) if isinstance(level, str) else int(level)
    get_logger(module).log(
        level_value,
        message,
        exc_info=exc_info,
        user_id=user_id,
        stage=stage,
        payload=dict(extra) if extra else None,
    )


def bind_context(
    *,
    request_id: str | None = None,
    user_id: int | str | None = None,
    direction: str | None = None,
    topic_id: int | str | None = None,
) -> Dict[str, Any]:
    """Bind relay context for the current update; pass the result to ``reset_context``."""

    values = {"request_id": request_id, "user_id": user_id, "direction": direction, "topic_id": topic_id}
    return {name: _CONTEXT[name].set(value) for name, value in values.items() if value is not None}


def reset_context(tokens: Mapping[str, Any]) -> None:
    for name, token in tokens.items():
        _CONTEXT[name].reset(token)


def current_context() -> Dict[str, Any]:
    """The relay context bound for the running update, without unset fields."""

    return {name: var.get() for name, var in _CONTEXT.items() if var.get() is not None}


__all__ = [
    "bind_context",
    "current_context",
    "get_logger",
    "info_domain",
    "log_event",
    "reset_context",
    "setup_logging",
]
