"""
Bridge exceptions and engine status taxonomy.

Engine status codes are mapped to explainable kinds so that a failed call can
be logged by name. Per-record problems (malformed input entries, malformed
response entries) are not exceptions; they are logged as Diagnostic events
and absorbed.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class EngineErrorKind(str, Enum):
    """Non-zero status of the engine's analyze entry point."""

    NULL_POINTER = "null_pointer"
    PARSE_ERROR = "parse_error"
    ANALYSIS_ERROR = "analysis_error"
    SERIALIZATION_ERROR = "serialization_error"
    ALLOCATION_ERROR = "allocation_error"
    UNKNOWN = "unknown_engine_error"


class ModelPathErrorKind(str, Enum):
    """Non-zero status of the engine's set_model_path entry point."""

    NULL_PATH = "null_path"
    INVALID_UTF8 = "invalid_utf8"
    FILE_NOT_FOUND = "file_not_found"
    DESERIALIZE_FAILURE = "deserialize_failure"
    UNKNOWN = "unknown_model_path_error"


class Diagnostic(str, Enum):
    """Per-record issues that are logged and skipped, never raised."""

    MALFORMED_INPUT_SKIP = "malformed_input_skip"
    MALFORMED_RESULT_SKIP = "malformed_result_skip"


ENGINE_STATUS_KINDS: dict[int, EngineErrorKind] = {
    -1: EngineErrorKind.NULL_POINTER,
    -2: EngineErrorKind.PARSE_ERROR,
    -3: EngineErrorKind.ANALYSIS_ERROR,
    -4: EngineErrorKind.SERIALIZATION_ERROR,
    -5: EngineErrorKind.ALLOCATION_ERROR,
}

MODEL_PATH_STATUS_KINDS: dict[int, ModelPathErrorKind] = {
    -1: ModelPathErrorKind.NULL_PATH,
    -2: ModelPathErrorKind.INVALID_UTF8,
    -3: ModelPathErrorKind.FILE_NOT_FOUND,
    -4: ModelPathErrorKind.DESERIALIZE_FAILURE,
}


class BridgeError(Exception):
    """Base class for every error raised by nocheat_bridge."""


class ConfigError(BridgeError):
    """An environment variable or setting has an invalid value."""


class LoadError(BridgeError):
    """The engine library is missing, cannot be loaded, or lacks an entry point."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class EngineCallError(BridgeError):
    """analyze returned a non-zero status; the out buffer must not be touched."""

    def __init__(self, status: int) -> None:
        self.status = int(status)
        self.kind = ENGINE_STATUS_KINDS.get(self.status, EngineErrorKind.UNKNOWN)
        super().__init__(f"engine analyze failed: {self.kind.value} (status={self.status})")

    @property
    def is_transient(self) -> bool:
        """True when a retry could plausibly succeed (allocation failure only)."""
        return self.kind is EngineErrorKind.ALLOCATION_ERROR


class ModelPathError(BridgeError):
    """set_model_path returned a non-zero status."""

    def __init__(self, status: int, path: str | None = None) -> None:
        self.status = int(status)
        self.kind = MODEL_PATH_STATUS_KINDS.get(self.status, ModelPathErrorKind.UNKNOWN)
        self.path = path
        super().__init__(f"engine set_model_path failed: {self.kind.value} (status={self.status}, path={path!r})")


class BufferOwnershipError(BridgeError):
    """A response buffer was read after release, released twice, or released by the wrong adapter."""


class MalformedInputError(BridgeError):
    """Raised by the aggregator under the fail policy; lists every malformed entity id."""

    def __init__(self, entity_ids: Iterable[str]) -> None:
        self.entity_ids = tuple(entity_ids)
        super().__init__(
            f"{len(self.entity_ids)} malformed stats payload(s): {', '.join(self.entity_ids)}"
        )
