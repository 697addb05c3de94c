"""
Engine adapter: safe call contract over the engine's three C entry points.

    int32 analyze_round(const uint8 *in, size_t in_len, uint8 **out, size_t *out_len)
    void  free_buffer(uint8 *ptr, size_t len)
    int32 set_model_path(const uint8 *path, size_t path_len)

The bridge depends only on the abstract EngineAdapter, so tests can substitute
a double. CtypesEngineAdapter binds a loaded library with explicit prototypes
and serializes every foreign call through one mutex, because the engine is not
documented as safe for concurrent calls.
"""

from __future__ import annotations

import contextlib
import ctypes
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from nocheat_bridge.core.exceptions import (
    BufferOwnershipError,
    EngineCallError,
    LoadError,
    ModelPathError,
)
from nocheat_bridge.engine.buffer import ResponseBuffer
from nocheat_bridge.nocheat_logging import get_logger

logger = get_logger(__name__)

STATUS_OK = 0

ModelPath = str | bytes | os.PathLike


@dataclass(frozen=True)
class EngineSymbols:
    """Exported symbol names of the engine library."""

    analyze: str = "analyze_round"
    free: str = "free_buffer"
    set_model_path: str = "set_model_path"


DEFAULT_SYMBOLS = EngineSymbols()


# -----------------------------------------------------------------------------
# Abstract adapter: the bridge only sees this interface.
# -----------------------------------------------------------------------------


class EngineAdapter(ABC):
    """Capability contract for calling the analysis engine."""

    @abstractmethod
    def analyze(self, payload: bytes) -> ResponseBuffer:
        """
        Submit one encoded batch. Returns the engine-owned response buffer;
        the caller must pass it to release() exactly once.
        Raises EngineCallError on any non-zero status.
        """
        ...

    @abstractmethod
    def set_model_path(self, path: ModelPath) -> None:
        """Point the engine at a model file. Raises ModelPathError on non-zero status."""
        ...

    @abstractmethod
    def _free(self, ptr: int, length: int) -> None:
        """Hand a non-empty (ptr, length) pair back to the engine."""
        ...

    def release(self, buffer: ResponseBuffer) -> None:
        """
        Consume a buffer returned by analyze(). Null or zero-length handles are
        marked released without calling the engine.
        """
        if buffer.owner is not self:
            raise BufferOwnershipError(f"{buffer!r} was not produced by this adapter")
        ptr, length = buffer.detach()
        try:
            if ptr and length:
                self._free(ptr, length)
        finally:
            self._on_released()

    def _on_released(self) -> None:
        """Called once per buffer after release() has consumed it."""

    def close(self) -> None:
        """Stop accepting calls before the engine library is unloaded."""


def _as_ubyte_array(data: bytes) -> ctypes.Array:
    return (ctypes.c_ubyte * len(data)).from_buffer_copy(data)


def _encode_model_path(path: ModelPath) -> bytes:
    if isinstance(path, bytes):
        return path
    return os.fspath(path).encode("utf-8")


# -----------------------------------------------------------------------------
# ctypes implementation
# -----------------------------------------------------------------------------


class CtypesEngineAdapter(EngineAdapter):
    """
    Adapter over a loaded engine library (a ctypes.CDLL or compatible object).

    Args:
        lib: Loaded library exporting the entry points named in symbols.
        symbols: Symbol names; defaults match the stock engine build.
        thread_safe: When True, foreign calls are not serialized.

    Raises LoadError if analyze or free is missing. set_model_path is optional;
    older engine builds do not export it.
    """

    def __init__(
        self,
        lib: Any,
        *,
        symbols: EngineSymbols = DEFAULT_SYMBOLS,
        thread_safe: bool = False,
    ) -> None:
        self._lib = lib
        self._symbols = symbols
        self._lock: Any = contextlib.nullcontext() if thread_safe else threading.Lock()
        # Foreign calls in progress plus buffers handed out and not yet released.
        self._busy = 0
        self._closed = False
        self._state = threading.Condition()
        self._analyze_fn = self._bind_required(symbols.analyze)
        self._free_fn = self._bind_required(symbols.free)
        self._set_model_path_fn = getattr(lib, symbols.set_model_path, None)
        self._configure_prototypes()

    def _bind_required(self, name: str) -> Any:
        fn = getattr(self._lib, name, None)
        if fn is None:
            raise LoadError(f"engine library does not export {name!r}")
        return fn

    def _configure_prototypes(self) -> None:
        """Set ctypes prototypes for the entry points (idempotent)."""
        self._analyze_fn.argtypes = [
            ctypes.POINTER(ctypes.c_ubyte),
            ctypes.c_size_t,
            ctypes.POINTER(ctypes.c_void_p),
            ctypes.POINTER(ctypes.c_size_t),
        ]
        self._analyze_fn.restype = ctypes.c_int32
        self._free_fn.argtypes = [ctypes.c_void_p, ctypes.c_size_t]
        self._free_fn.restype = None
        if self._set_model_path_fn is not None:
            self._set_model_path_fn.argtypes = [ctypes.POINTER(ctypes.c_ubyte), ctypes.c_size_t]
            self._set_model_path_fn.restype = ctypes.c_int32

    @property
    def supports_model_path(self) -> bool:
        return self._set_model_path_fn is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _enter(self) -> None:
        with self._state:
            if self._closed:
                raise LoadError("engine adapter is closed; the library is being unloaded")
            self._busy += 1

    def _leave(self) -> None:
        with self._state:
            self._busy -= 1
            self._state.notify_all()

    def _on_released(self) -> None:
        self._leave()

    def close(self) -> None:
        """
        Refuse new calls, then block until calls in progress have returned and
        every buffer handed out by analyze() has been released. The library
        can be unloaded once this returns. Must not be called by a thread that
        still holds an unreleased buffer.
        """
        with self._state:
            self._closed = True
            self._state.wait_for(lambda: self._busy == 0)
        logger.debug("engine_adapter_closed")

    def analyze(self, payload: bytes) -> ResponseBuffer:
        data = _as_ubyte_array(payload)
        out_ptr = ctypes.c_void_p()
        out_len = ctypes.c_size_t()
        self._enter()
        handed_out = False
        try:
            with self._lock:
                status = int(
                    self._analyze_fn(data, len(payload), ctypes.pointer(out_ptr), ctypes.pointer(out_len))
                )
            if status != STATUS_OK:
                # Out parameters are undefined on failure; never read them.
                raise EngineCallError(status)
            buffer = ResponseBuffer(out_ptr.value, out_len.value, owner=self)
            handed_out = True
        finally:
            # A handed-out buffer stays counted until release().
            if not handed_out:
                self._leave()
        logger.debug("engine_buffer_acquired", ptr=hex(buffer.ptr), length=buffer.length)
        return buffer

    def _free(self, ptr: int, length: int) -> None:
        with self._lock:
            self._free_fn(ptr, length)
        logger.debug("engine_buffer_released", ptr=hex(ptr), length=length)

    def set_model_path(self, path: ModelPath) -> None:
        if self._set_model_path_fn is None:
            raise LoadError(f"engine library does not export {self._symbols.set_model_path!r}")
        raw = _encode_model_path(path)
        data = _as_ubyte_array(raw)
        self._enter()
        try:
            with self._lock:
                status = int(self._set_model_path_fn(data, len(raw)))
        finally:
            self._leave()
        display = os.fsdecode(raw)
        if status != STATUS_OK:
            raise ModelPathError(status, path=display)
        logger.info("engine_model_path_set", path=display)
