"""
Core: error taxonomy shared by the engine adapter, loader, analysis bridge and CLI.
"""

from nocheat_bridge.core.exceptions import (
    BridgeError,
    BufferOwnershipError,
    ConfigError,
    Diagnostic,
    EngineCallError,
    EngineErrorKind,
    LoadError,
    MalformedInputError,
    ModelPathError,
    ModelPathErrorKind,
)

__all__ = [
    "BridgeError",
    "BufferOwnershipError",
    "ConfigError",
    "Diagnostic",
    "EngineCallError",
    "EngineErrorKind",
    "LoadError",
    "MalformedInputError",
    "ModelPathError",
    "ModelPathErrorKind",
]
