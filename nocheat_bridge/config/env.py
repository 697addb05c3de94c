"""
Environment variable loading and validation for NoCheat Bridge.

- NOCHEAT_LIBRARY_PATH: explicit path to the engine library
- NOCHEAT_LIBRARY_DIRS: os.pathsep-separated directories to search
- NOCHEAT_MODEL_PATH: model file handed to the engine's set_model_path
- NOCHEAT_ID_FIELD: id field injected into requests / read from responses (default: entity_id)
- NOCHEAT_MALFORMED_POLICY: skip | fail (default: skip)
- NOCHEAT_ENGINE_THREAD_SAFE: 1/true/yes/on when the engine tolerates concurrent calls
- LOG_LEVEL: stdlib level name (default: INFO)
- LOG_FORMAT: json | console (default: json)
- Loads .env from the working directory when available.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from nocheat_bridge.core.exceptions import ConfigError

DEFAULT_ID_FIELD = "entity_id"
DEFAULT_MALFORMED_POLICY = "skip"
MALFORMED_POLICIES = ("skip", "fail")
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "json"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("", "0", "false", "no", "off")


def load_bridge_env(dotenv_path: str | Path | None = None) -> None:
    """Load .env (never overriding variables already set). Safe to call multiple times."""
    path = dotenv_path or find_dotenv(usecwd=True)
    if path:
        load_dotenv(path, override=False)


def _get(name: str) -> str:
    return (os.getenv(name) or "").strip()


def _get_path(name: str) -> Path | None:
    raw = _get(name)
    return Path(raw).expanduser() if raw else None


def get_library_path() -> Path | None:
    """Return NOCHEAT_LIBRARY_PATH, or None to fall back to directory search."""
    load_bridge_env()
    return _get_path("NOCHEAT_LIBRARY_PATH")


def get_library_dirs() -> list[Path]:
    """Return the NOCHEAT_LIBRARY_DIRS search path, in order."""
    load_bridge_env()
    raw = _get("NOCHEAT_LIBRARY_DIRS")
    return [Path(part).expanduser() for part in raw.split(os.pathsep) if part.strip()]


def get_model_path() -> Path | None:
    """Return NOCHEAT_MODEL_PATH; None leaves the engine's built-in model in place."""
    load_bridge_env()
    return _get_path("NOCHEAT_MODEL_PATH")


def get_id_field() -> str:
    """Return the wire name of the entity id field."""
    load_bridge_env()
    return _get("NOCHEAT_ID_FIELD") or DEFAULT_ID_FIELD


def get_malformed_policy() -> str:
    """
    Return NOCHEAT_MALFORMED_POLICY: skip | fail.
    Default: skip.
    """
    load_bridge_env()
    raw = _get("NOCHEAT_MALFORMED_POLICY").lower() or DEFAULT_MALFORMED_POLICY
    if raw not in MALFORMED_POLICIES:
        raise ConfigError(
            f"NOCHEAT_MALFORMED_POLICY must be one of {', '.join(MALFORMED_POLICIES)}; got {raw!r}"
        )
    return raw


def is_engine_thread_safe() -> bool:
    """Return True if NOCHEAT_ENGINE_THREAD_SAFE declares concurrent-call safety."""
    load_bridge_env()
    raw = _get("NOCHEAT_ENGINE_THREAD_SAFE").lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigError(f"NOCHEAT_ENGINE_THREAD_SAFE must be a boolean flag; got {raw!r}")


def get_log_level() -> str:
    """
    Return LOG_LEVEL as an upper-case stdlib level name.
    Unknown names fall back to INFO so that logging never blocks an import.
    """
    load_bridge_env()
    raw = _get("LOG_LEVEL").upper()
    return raw if isinstance(getattr(logging, raw, None), int) else DEFAULT_LOG_LEVEL


def get_log_format() -> str:
    """Return LOG_FORMAT: json (default) or anything else for the console renderer."""
    load_bridge_env()
    return _get("LOG_FORMAT").lower() or DEFAULT_LOG_FORMAT
