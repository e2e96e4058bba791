"""
Logging configuration for the layered transfer mixer.

Supports two formats:
- ``text`` (default): human-readable log lines
- ``json``: structured JSON for log aggregation

Every record carries a ``batch_id`` correlation id so the interleaved
lines of concurrent transfers in one batch (or one sweep) can be grouped.

Settings via env vars:
- ``LOG_LEVEL``: DEBUG / INFO / WARNING / ERROR (default: INFO)
- ``LOG_FORMAT``: text / json (default: text)
- ``SENTRY_DSN``: enables Sentry error tracking when set
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

import sentry_sdk

from config import (
    LOG_FORMAT,
    LOG_LEVEL,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
)
from .errors import MixerInputError, PreconditionError

# Context var holding the id of the batch or sweep currently running
batch_id_ctx: ContextVar[str] = ContextVar("batch_id", default="-")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "batch_id": batch_id_ctx.get("-"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json_mod.dumps(entry, default=str)


def setup_logging(level: str = LOG_LEVEL, fmt: str = LOG_FORMAT) -> None:
    """Configure the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s (%(batch_id)s) %(message)s",
                defaults={"batch_id": "-"},
            )
        )

    handler.addFilter(_BatchIdFilter())
    root.addHandler(handler)


class _BatchIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.batch_id = batch_id_ctx.get("-")  # type: ignore[attr-defined]
        return True


def generate_batch_id() -> str:
    """Create a short unique batch ID."""
    return uuid.uuid4().hex[:12]


def _drop_caller_errors(event: dict, hint: dict) -> Optional[dict]:
    """Keep input and precondition errors out of Sentry."""
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], (MixerInputError, PreconditionError)):
        return None
    return event


def init_error_tracking() -> bool:
    """Initialise Sentry when ``SENTRY_DSN`` is set.  Returns whether it did."""
    if not SENTRY_DSN:
        return False
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        before_send=_drop_caller_errors,
    )
    logging.getLogger(__name__).info("Sentry initialised (env=%s)", SENTRY_ENVIRONMENT)
    return True
