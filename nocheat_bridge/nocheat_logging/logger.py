"""
Structured JSON logging: timestamp, entity_id, event_type, engine diagnostics.

structlog with ISO timestamps, log level and consistent keys for aggregation.
All bridge modules use get_logger() and log an event_type (first arg) plus
keyword context such as entity_id, status or kind.

Level and renderer come from LOG_LEVEL / LOG_FORMAT (environment or .env,
read through nocheat_bridge.config.env) when the package is first imported.
Logs go to stderr so that CLI output on stdout stays machine-readable.
The only bridge import is config.env, which does not log, so there is no
circular import.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

from nocheat_bridge.config.env import get_log_format, get_log_level


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (ISO 8601)."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type; keep message if present."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def configure_structlog(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure structlog for the bridge.

    Args:
        level: stdlib level name; default LOG_LEVEL (INFO).
        fmt: "json" for one JSON object per line, anything else for the
            console renderer; default LOG_FORMAT (json).

    Module loggers bind on import and keep the configuration current at that
    time, so hosts overriding these should call this before importing the
    bridge modules they use.
    """
    level_value = getattr(logging, (level or get_log_level()).upper(), logging.INFO)
    renderer_format = (fmt or get_log_format()).strip().lower()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
    ]
    if renderer_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.warning("engine_call_failed", kind="parse_error", status=-2)

    Output (JSON): {"event_type": "engine_call_failed", "kind": "parse_error",
    "status": -2, "timestamp": "...", "level": "warning", "logger": "module.name"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_entity(entity_id: str) -> structlog.BoundLogger:
    """Return a logger with entity_id bound to all subsequent log calls."""
    return get_logger("nocheat_bridge").bind(entity_id=entity_id)
