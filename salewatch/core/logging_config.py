"""Salewatch logging configuration.

Call ``configure_logging()`` once at process startup (e.g. in ``__main__``).
Every other module must define its own logger at module scope:

    import logging
    logger = logging.getLogger(__name__)

Supported environment variables (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR   (default: INFO)
    LOG_FORMAT  text | json                      (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = ["configure_logging", "JsonFormatter", "PASS_ID_CTX", "PassContextFilter"]

# ---------------------------------------------------------------------------
# Pass-scoped context variable
# ---------------------------------------------------------------------------

#: Context variable holding the identifier of the scan pass in progress.
#: Set to ``uuid4().hex[:8]`` when the daily scheduler opens a pass and kept
#: for every cooldown resumption of that pass.  Defaults to ``"-"`` outside
#: of any pass (startup, status reports, tests).
PASS_ID_CTX: ContextVar[str] = ContextVar("pass_id", default="-")

logger = logging.getLogger(__name__)

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_VALID_FORMATS = ("text", "json")

# ``%(pass_id)s`` is injected by :class:`PassContextFilter`.
_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(pass_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite")


class PassContextFilter(logging.Filter):
    """Inject the current pass ID into every log record.

    Installed on the handler (not the logger) by :func:`configure_logging`,
    so it runs after propagation and every formatted record carries
    ``record.pass_id``.  In JSON mode the value surfaces under ``"extra"``.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.pass_id = PASS_ID_CTX.get("-")
        return True


def _resolve(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    resolved = value or os.environ.get(env_var, default)
    resolved = resolved.upper() if env_var == "LOG_LEVEL" else resolved.lower()
    if resolved not in allowed:
        raise ValueError(f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(allowed)}")
    return resolved


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger for the entire process.

    Args:
        level: Logging level name. Falls back to ``$LOG_LEVEL``, then INFO.
        fmt: ``"text"`` or ``"json"``. Falls back to ``$LOG_FORMAT``, then text.
        force: Replace existing root handlers instead of only adjusting the level.

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _VALID_LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _VALID_FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)

    if root.handlers and not force:
        # Already configured (e.g. by pytest's log_cli).
        return

    formatter: logging.Formatter = (
        JsonFormatter()
        if resolved_fmt == "json"
        else logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT)
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(PassContextFilter())
    handler.setFormatter(formatter)

    root.handlers.clear()
    root.addHandler(handler)

    noisy_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

#: Attributes every LogRecord carries; anything else came in via ``extra=``.
_STANDARD_ATTRS: frozenset[str] = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
}


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log record.

    Example line::

        {"ts": "2026-10-19T17:05:00.123Z", "level": "INFO",
         "logger": "salewatch.orchestrator.scheduler", "message": "Pass complete",
         "extra": {"pass_id": "a3f2b1c0", "event": "PASS_COMPLETE"}}

    ``exc_info`` and ``stack_info`` keys appear only when the record has them.
    """

    def formatTime(  # noqa: N802
        self, record: logging.LogRecord, datefmt: str | None = None
    ) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        return stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in _STANDARD_ATTRS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)

        # default=str covers datetimes and exceptions passed through ``extra``.
        return json.dumps(payload, default=str)
