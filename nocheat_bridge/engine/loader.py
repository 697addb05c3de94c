"""
Engine loader: locate, load and unload the platform-specific engine library.

The engine ships as nocheat.dll (Windows), libnocheat.dylib (macOS) or
libnocheat.so (Linux). Candidates are, in order: the explicit library path,
then for every search directory <dir>/lib/<Win64|Mac|Linux>/<name> and
<dir>/<name>, then whatever ctypes.util.find_library("nocheat") resolves.
The file is checked for existence before dlopen so that a missing engine is
reported as "not found" rather than as a loader error.

EngineLoader.adapter() loads lazily, once, behind a lock:

    UNINITIALIZED -> LOADING -> READY | UNAVAILABLE

While UNAVAILABLE the stored LoadError is re-raised without retrying; reset()
unloads and returns to UNINITIALIZED.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import sys
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

from nocheat_bridge.core.exceptions import BridgeError, LoadError
from nocheat_bridge.engine.adapter import (
    DEFAULT_SYMBOLS,
    CtypesEngineAdapter,
    EngineAdapter,
    EngineSymbols,
)
from nocheat_bridge.nocheat_logging import get_logger

logger = get_logger(__name__)

LIBRARY_BASENAME = "nocheat"

# (library file name, platform directory under lib/)
_PLATFORM_LIBRARIES: dict[str, tuple[str, str]] = {
    "win32": ("nocheat.dll", "Win64"),
    "darwin": ("libnocheat.dylib", "Mac"),
    "linux": ("libnocheat.so", "Linux"),
}


class LoaderState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"


def _platform_key(platform: str) -> str:
    if platform.startswith("win") or platform == "cygwin":
        return "win32"
    if platform == "darwin":
        return "darwin"
    return "linux"


def library_filename(platform: str = sys.platform) -> str:
    """Engine library file name for the given sys.platform value."""
    return _PLATFORM_LIBRARIES[_platform_key(platform)][0]


def candidate_paths(
    library_path: str | Path | None = None,
    search_dirs: Iterable[str | Path] = (),
    *,
    platform: str = sys.platform,
) -> list[Path]:
    """Return candidate library paths in resolution order (existence not checked)."""
    name, platform_dir = _PLATFORM_LIBRARIES[_platform_key(platform)]
    out: list[Path] = []
    if library_path:
        out.append(Path(library_path).expanduser())
    for base in search_dirs:
        base = Path(base).expanduser()
        out.append(base / "lib" / platform_dir / name)
        out.append(base / name)
    return out


def resolve_library(
    library_path: str | Path | None = None,
    search_dirs: Iterable[str | Path] = (),
    *,
    platform: str = sys.platform,
) -> Path:
    """
    Return the first existing candidate.

    An explicit library_path is authoritative: if it does not exist the search
    stops there. Raises LoadError when nothing is found.
    """
    candidates = candidate_paths(library_path, search_dirs, platform=platform)
    if library_path:
        explicit = candidates[0]
        if explicit.is_file():
            return explicit
        raise LoadError(f"engine library not found at {explicit}", path=str(explicit))
    for path in candidates:
        if path.is_file():
            return path
    found = ctypes.util.find_library(LIBRARY_BASENAME)
    if found:
        return Path(found)
    searched = ", ".join(str(p) for p in candidates) or "(no search directories)"
    raise LoadError(f"engine library {library_filename(platform)} not found; searched: {searched}")


def _close_library(lib: Any) -> None:
    """Drop the OS-level handle of a ctypes.CDLL."""
    import _ctypes

    handle = getattr(lib, "_handle", None)
    if not handle:
        return
    if sys.platform == "win32":
        _ctypes.FreeLibrary(handle)
    else:
        _ctypes.dlclose(handle)


@dataclass
class EngineHandle:
    """A loaded engine library. Closed by EngineLoader.unload."""

    path: Path
    lib: Any
    closed: bool = field(default=False, compare=False)


class EngineLoader:
    """
    Lazily loads the engine and hands out one shared CtypesEngineAdapter.

    Args:
        library_path: Explicit engine library path.
        search_dirs: Directories searched when library_path is not given.
        model_path: Passed to set_model_path right after loading; None skips it.
        symbols: Exported symbol names.
        thread_safe: Disable the adapter mutex (engine documents concurrent-call safety).
        cdll_factory: Opens a library path; ctypes.CDLL by default.
        library_closer: Closes a library opened by cdll_factory.
    """

    def __init__(
        self,
        library_path: str | Path | None = None,
        *,
        search_dirs: Iterable[str | Path] = (),
        model_path: str | Path | None = None,
        symbols: EngineSymbols = DEFAULT_SYMBOLS,
        thread_safe: bool = False,
        cdll_factory: Callable[[str], Any] = ctypes.CDLL,
        library_closer: Callable[[Any], None] = _close_library,
    ) -> None:
        self.library_path = Path(library_path) if library_path else None
        self.search_dirs = tuple(Path(d) for d in search_dirs)
        self.model_path = model_path
        self.symbols = symbols
        self.thread_safe = thread_safe
        self._cdll_factory = cdll_factory
        self._library_closer = library_closer
        self._lock = threading.Lock()
        self._state = LoaderState.UNINITIALIZED
        self._handle: EngineHandle | None = None
        self._adapter: EngineAdapter | None = None
        self._error: LoadError | None = None

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def last_error(self) -> LoadError | None:
        return self._error

    def load(self) -> EngineHandle:
        """Resolve and open the engine library. Raises LoadError."""
        path = resolve_library(self.library_path, self.search_dirs)
        try:
            lib = self._cdll_factory(str(path))
        except OSError as exc:
            raise LoadError(f"failed to load engine library {path}: {exc}", path=str(path)) from exc
        logger.info("engine_library_loaded", path=str(path))
        return EngineHandle(path=path, lib=lib)

    def unload(self, handle: EngineHandle) -> None:
        """Close a handle returned by load(). Closing twice is a no-op."""
        if handle.closed:
            return
        handle.closed = True
        self._library_closer(handle.lib)
        logger.info("engine_library_unloaded", path=str(handle.path))

    def adapter(self) -> EngineAdapter:
        """
        Return the shared adapter, loading the engine on first use.

        Raises LoadError (a rejected model path is reported as one too) and
        stays UNAVAILABLE until reset().
        """
        with self._lock:
            if self._state is LoaderState.READY and self._adapter is not None:
                return self._adapter
            if self._state is LoaderState.UNAVAILABLE and self._error is not None:
                raise self._error
            self._state = LoaderState.LOADING
            handle: EngineHandle | None = None
            try:
                handle = self.load()
                adapter = CtypesEngineAdapter(handle.lib, symbols=self.symbols, thread_safe=self.thread_safe)
                if self.model_path is not None:
                    adapter.set_model_path(self.model_path)
            except BridgeError as exc:
                if handle is not None:
                    self.unload(handle)
                self._state = LoaderState.UNAVAILABLE
                logger.error("engine_unavailable", error=str(exc), error_type=type(exc).__name__)
                if isinstance(exc, LoadError):
                    self._error = exc
                    raise
                self._error = LoadError(f"engine rejected configured model: {exc}")
                raise self._error from exc
            self._handle = handle
            self._adapter = adapter
            self._error = None
            self._state = LoaderState.READY
            return adapter

    def reset(self) -> None:
        """
        Unload (if loaded) and return to UNINITIALIZED so the next adapter() call retries.

        The adapter handed out earlier is closed first: it refuses new calls and
        this blocks until its calls in progress return and its outstanding
        buffers are released, so the library is never unloaded under a caller.
        """
        with self._lock:
            handle, self._handle = self._handle, None
            adapter, self._adapter = self._adapter, None
            self._error = None
            self._state = LoaderState.UNINITIALIZED
        if adapter is not None:
            adapter.close()
        if handle is not None:
            self.unload(handle)

    close = reset
