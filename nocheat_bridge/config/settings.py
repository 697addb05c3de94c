"""
Application settings for the bridge.

Collects the typed environment getters into one frozen object so that the
loader, bridge and CLI read configuration once and pass it explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

from nocheat_bridge.config import env


@dataclass(frozen=True)
class BridgeSettings:
    """
    Resolved bridge configuration.

    library_path: explicit engine library; None searches library_dirs.
    library_dirs: directories searched for the platform library name.
    model_path: passed to set_model_path once the engine is loaded; None skips the call.
    id_field: wire name of the entity id in requests and responses.
    malformed_policy: "skip" drops malformed per-entity payloads, "fail" rejects the batch.
    engine_thread_safe: disables the adapter mutex.
    """

    library_path: Path | None = None
    library_dirs: tuple[Path, ...] = field(default_factory=tuple)
    model_path: Path | None = None
    id_field: str = env.DEFAULT_ID_FIELD
    malformed_policy: str = env.DEFAULT_MALFORMED_POLICY
    engine_thread_safe: bool = False

    def with_overrides(self, **changes: object) -> "BridgeSettings":
        """Return a copy with the non-None keyword values applied (CLI flags)."""
        applied = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **applied) if applied else self


def get_settings() -> BridgeSettings:
    """
    Return settings resolved from the environment (and .env).

    Raises ConfigError on invalid values.
    """
    return BridgeSettings(
        library_path=env.get_library_path(),
        library_dirs=tuple(env.get_library_dirs()),
        model_path=env.get_model_path(),
        id_field=env.get_id_field(),
        malformed_policy=env.get_malformed_policy(),
        engine_thread_safe=env.is_engine_thread_safe(),
    )
