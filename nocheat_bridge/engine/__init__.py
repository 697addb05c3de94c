"""
Engine package: FFI boundary to the NoCheat analysis engine.

Binds the engine's C entry points behind the EngineAdapter contract, models
the engine-allocated response as a single-use ResponseBuffer, and locates and
loads the platform library through EngineLoader.
"""

from nocheat_bridge.engine.adapter import (
    DEFAULT_SYMBOLS,
    CtypesEngineAdapter,
    EngineAdapter,
    EngineSymbols,
)
from nocheat_bridge.engine.buffer import ResponseBuffer
from nocheat_bridge.engine.loader import (
    EngineHandle,
    EngineLoader,
    LoaderState,
    candidate_paths,
    library_filename,
    resolve_library,
)

__all__ = [
    "DEFAULT_SYMBOLS",
    "CtypesEngineAdapter",
    "EngineAdapter",
    "EngineSymbols",
    "ResponseBuffer",
    "EngineHandle",
    "EngineLoader",
    "LoaderState",
    "candidate_paths",
    "library_filename",
    "resolve_library",
]
