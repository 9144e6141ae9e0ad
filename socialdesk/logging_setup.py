# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import logging
import sys
import contextvars
from pythonjsonlogger.json import JsonFormatter
from .config import settings

# Stamped on every record emitted while set
request_id_var = contextvars.ContextVar("request_id", default=None)
pass_id_var = contextvars.ContextVar("pass_id", default=None)

SECRET_MARKERS = ("token", "secret", "password", "api_key", "apikey", "authorization", "cookie")
REDACTED = "***REDACTED***"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _is_secret(key: str) -> bool:
    key = key.lower()
    return any(marker in key for marker in SECRET_MARKERS)


class RedactingJsonFormatter(JsonFormatter):
    """JSON lines with request and dispatch-pass ids; secret-looking string fields are masked."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["service_name"] = "socialdesk"

        for key, var in (("request_id", request_id_var), ("pass_id", pass_id_var)):
            value = var.get()
            if value:
                log_record[key] = value

        for key, value in list(log_record.items()):
            if isinstance(value, str) and _is_secret(key):
                log_record[key] = REDACTED


def setup_logging():
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(RedactingJsonFormatter(
        "%(name)s %(message)s",
        rename_fields={"name": "logger"},
        timestamp=True,
    ))
    root.addHandler(handler)

    # Access lines and APScheduler job chatter drown out dispatch events
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def log_event(event: str, level: str = "info", **fields):
    """Structured event; None-valued fields are dropped."""
    extra = {k: v for k, v in fields.items() if v is not None}
    extra["event"] = event
    logging.getLogger("socialdesk").log(LOG_LEVELS.get(level.lower(), logging.INFO), event, extra=extra)
