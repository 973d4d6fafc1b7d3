"""Structured logging for the signing tools.

Console output in ``dev``, one JSON object per line otherwise.  Everything
goes to stderr so CLI commands can print envelopes on stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from config.settings import settings

# Event keys whose values must never reach a log sink.
SECRET_KEYS = frozenset({"private_key", "key", "secret", "seed", "mnemonic"})


def redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask values logged under a secret-looking key."""
    for name in event_dict.keys() & SECRET_KEYS:
        event_dict[name] = "***"
    return event_dict


def setup_logging(level: str | None = None) -> None:
    """Configure structlog and route stdlib logging through it.

    ``level`` overrides ``LOG_LEVEL``.  Calling again replaces the root
    handler rather than stacking another one.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if settings.APP_ENV == "dev":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel((level or settings.LOG_LEVEL).upper())

    structlog.contextvars.bind_contextvars(app=settings.APP_NAME)
