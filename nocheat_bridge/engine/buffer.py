"""
Single-use handle for an engine-allocated response buffer.

Ownership notes:
- On a zero status, analyze hands back a (pointer, length) pair allocated by
  the engine. The caller owns it and must give it back through the engine's
  free entry point exactly once, with the exact pair it received.
- read() copies the bytes out; the copy stays valid after release.
- Reading after release, releasing twice, or releasing through an adapter that
  did not produce the handle raises BufferOwnershipError instead of reaching
  the engine.
"""

from __future__ import annotations

import ctypes
import threading
from typing import Any, Callable

from nocheat_bridge.core.exceptions import BufferOwnershipError

Reader = Callable[[int, int], bytes]


class ResponseBuffer:
    """Engine-owned (pointer, length) region; consumed exactly once by EngineAdapter.release."""

    __slots__ = ("_ptr", "_length", "_owner", "_reader", "_released", "_lock")

    def __init__(
        self,
        ptr: int | None,
        length: int,
        *,
        owner: Any = None,
        reader: Reader = ctypes.string_at,
    ) -> None:
        self._ptr = int(ptr or 0)
        # A null pointer never carries data, whatever length the engine wrote.
        self._length = int(length) if self._ptr else 0
        self._owner = owner
        self._reader = reader
        self._released = False
        self._lock = threading.Lock()

    @property
    def ptr(self) -> int:
        return self._ptr

    @property
    def length(self) -> int:
        return self._length

    @property
    def owner(self) -> Any:
        """Adapter that produced this handle (None for detached test buffers)."""
        return self._owner

    @property
    def released(self) -> bool:
        return self._released

    @property
    def is_empty(self) -> bool:
        """True for null or zero-length handles; the engine's free is never called for these."""
        return not self._ptr or self._length == 0

    def read(self) -> bytes:
        """Copy the buffer contents into an owned bytes object."""
        with self._lock:
            if self._released:
                raise BufferOwnershipError(f"read after release: {self!r}")
            if self.is_empty:
                return b""
            return bytes(self._reader(self._ptr, self._length))

    def detach(self) -> tuple[int, int]:
        """
        Mark the handle released and return the (pointer, length) pair to free.

        Only EngineAdapter.release should call this. Raises BufferOwnershipError
        on the second call.
        """
        with self._lock:
            if self._released:
                raise BufferOwnershipError(f"buffer released twice: {self!r}")
            self._released = True
            return self._ptr, self._length

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"ResponseBuffer(ptr=0x{self._ptr:x}, length={self._length}, {state})"
