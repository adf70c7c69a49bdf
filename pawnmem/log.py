"""Logging setup for pawnmem entry points."""

from __future__ import annotations

import logging
import re

import structlog

_SECRET_KEYS = {"api_key", "authorization", "token"}
_TRUNCATED_KEYS = {"content", "preview", "prompt", "text"}
_MAX_DISPLAY_LEN = 80

# Google endpoints carry the key in the query string.
_URL_KEY_RE = re.compile(r"([?&]key=)[^&\s]+")


def _redact_sensitive_fields(logger, method_name, event_dict):
    """
    Structlog processor that keeps credentials and long memory text out of logs.

    Secrets are replaced outright. Memory and prompt text is shortened so that
    a pawn's full history never lands in a log file.
    """
    for key in _SECRET_KEYS:
        if event_dict.get(key):
            event_dict[key] = "***"

    for key in _TRUNCATED_KEYS:
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > _MAX_DISPLAY_LEN:
            event_dict[key] = val[:_MAX_DISPLAY_LEN] + "... [truncated]"

    for key, val in list(event_dict.items()):
        if isinstance(val, str) and "key=" in val:
            event_dict[key] = _URL_KEY_RE.sub(r"\1***", val)

    return event_dict


_logging_configured = False


def configure_logging(level: int = logging.WARNING, force: bool = False) -> None:
    """Configure structlog over standard-library logging.

    Safe to call more than once; later calls are no-ops unless ``force``.
    """
    global _logging_configured  # noqa: PLW0603
    if _logging_configured and not force:
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=level, force=force)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            _redact_sensitive_fields,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
