"""Structured logging for the rate limited gateway.

Every record passes through two filters and one formatter:
- ``RequestIdFilter`` attaches the request id kept in a context variable
- ``SensitiveDataFilter`` redacts API keys, Redis credentials and raw caller
  identities (only the hashed ``key_hash`` may reach the output)
- ``JsonFormatter`` nests limiter fields under a ``rate_limit`` object, so
  admission, rejection and store outage lines share one shape; the ``plain``
  format appends the same fields as ``key=value`` pairs instead

Uvicorn's loggers are routed through the same root handler. Its access log is
muted because ``http.request`` from the request middleware replaces it.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from notify_api.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Fields whose values never reach the output, matched case-insensitively
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "x-api-key",
        "app_api_keys",
        "authorization",
        "password",
        "redis_password",
        "redis_url",
        "cookie",
        "identity",
        "client_ip",
        "x-forwarded-for",
    }
)

# Emitted by the limiter and grouped under "rate_limit" in JSON output
RATE_LIMIT_FIELDS: tuple[str, ...] = (
    "tier",
    "key_rule",
    "key_hash",
    "count",
    "limit",
    "remaining",
    "window_s",
    "retry_after_s",
    "failure_mode",
    "policy",
    "counter_store",
)

_URL_CREDENTIALS = re.compile(r"(rediss?://[^:@/\s]*:)[^@\s]+@")

# Attributes every LogRecord carries; anything else came in through ``extra``
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "color_message",
}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def _scrub(value: Any, sensitive_keys: frozenset[str]) -> Any:
    """Redact sensitive mapping entries and Redis URL passwords, recursively."""

    if isinstance(value, str):
        return _URL_CREDENTIALS.sub(rf"\1{REDACTED}@", value)
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in sensitive_keys else _scrub(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v, sensitive_keys) for v in value)
    return value


def record_fields(record: LogRecord) -> dict[str, Any]:
    """Return the ``extra`` fields of ``record`` in emission order."""

    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


def group_rate_limit_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Move limiter fields into a nested ``rate_limit`` mapping."""

    grouped = {k: v for k, v in fields.items() if k not in RATE_LIMIT_FIELDS}
    rate_limit = {k: fields[k] for k in RATE_LIMIT_FIELDS if k in fields}
    if rate_limit:
        grouped["rate_limit"] = rate_limit
    return grouped


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive ``extra`` fields on the record before formatting."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        keys = SENSITIVE_KEYS_DEFAULT if sensitive_keys is None else sensitive_keys
        self.sensitive_keys = frozenset(k.lower() for k in keys)

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in record_fields(record).items():
            if key.lower() in self.sensitive_keys:
                setattr(record, key, REDACTED)
            else:
                setattr(record, key, _scrub(value, self.sensitive_keys))
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; limiter fields nested under ``rate_limit``."""

    def format(self, record: LogRecord) -> str:  # noqa: D401
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            data["request_id"] = request_id

        fields = record_fields(record)
        fields.pop("request_id", None)
        data.update(group_rate_limit_fields(fields))

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class PlainFormatter(logging.Formatter):
    """Human-readable line followed by the record's fields as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: LogRecord) -> str:  # noqa: D401
        line = super().format(record)
        pairs = " ".join(f"{key}={value}" for key, value in record_fields(record).items())
        return f"{line} {pairs}" if pairs else line


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/notify_api.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the redacting handler on the root logger.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(PlainFormatter() if cfg.format.lower() == "plain" else JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
