"""
Pytest fixtures for NoCheat Bridge tests.

FakeEngineLib stands in for a loaded engine library at the ctypes level: its
entry points receive the same arguments CtypesEngineAdapter passes to the
real C functions and hand back real ctypes-allocated buffers, so pointer and
length bookkeeping is exercised end to end. FakeEngineAdapter is a
pure-Python adapter that counts releases, for bridge-level tests.
"""

from __future__ import annotations

import ctypes
import json
import threading
import time
from typing import Any, Callable

import pytest

from nocheat_bridge.core.exceptions import EngineCallError
from nocheat_bridge.engine.adapter import EngineAdapter
from nocheat_bridge.engine.buffer import ResponseBuffer
from nocheat_bridge.engine.loader import library_filename

Handler = Callable[[bytes], tuple[int, bytes | None]]


def scoring_handler(id_field: str = "entity_id") -> Handler:
    """Engine behaviour for tests: score = hits / 100, aimbot flag above 0.9."""

    def handle(request: bytes) -> tuple[int, bytes | None]:
        results = []
        for obj in json.loads(request):
            score = obj.get("hits", 0) / 100
            results.append(
                {
                    id_field: obj[id_field],
                    "suspicion_score": score,
                    "flags": ["aimbot"] if score > 0.9 else [],
                }
            )
        return 0, json.dumps({"results": results}).encode("utf-8")

    return handle


class _FakeFunction:
    """Callable with argtypes/restype slots, like a ctypes foreign function."""

    def __init__(self, impl: Callable[..., Any]) -> None:
        self._impl = impl
        self.argtypes: Any = None
        self.restype: Any = None
        self.calls = 0

    def __call__(self, *args: Any) -> Any:
        self.calls += 1
        return self._impl(*args)


class FakeEngineLib:
    """
    In-process engine library.

    handler maps the request bytes to (status, response bytes or None). On a
    zero status the response is copied into a ctypes buffer that stays alive
    until free_buffer is called with its exact (pointer, length).
    """

    def __init__(
        self,
        handler: Handler | None = None,
        *,
        model_status: int = 0,
        export_model_path: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.handler = handler or scoring_handler()
        self.model_status = model_status
        self.delay = delay
        self.requests: list[bytes] = []
        self.freed: list[tuple[int, int]] = []
        self.model_paths: list[str] = []
        self.live: dict[int, tuple[Any, int]] = {}
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()
        self.analyze_round = _FakeFunction(self._analyze)
        self.free_buffer = _FakeFunction(self._free)
        self.set_model_path = _FakeFunction(self._set_model_path) if export_model_path else None

    def _analyze(self, data: Any, length: int, out_ptr: Any, out_len: Any) -> int:
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            request = bytes(data)[:length]
            self.requests.append(request)
            status, body = self.handler(request)
            if status != 0:
                return status
            if body is None:
                out_ptr[0] = None
                out_len[0] = 0
                return 0
            buf = ctypes.create_string_buffer(body, max(len(body), 1))
            addr = ctypes.addressof(buf)
            self.live[addr] = (buf, len(body))
            out_ptr[0] = addr
            out_len[0] = len(body)
            return 0
        finally:
            with self._guard:
                self.active -= 1

    def _free(self, ptr: int, length: int) -> None:
        if ptr not in self.live:
            raise AssertionError(f"free of unknown pointer 0x{ptr:x}")
        _, expected = self.live.pop(ptr)
        if length != expected:
            raise AssertionError(f"free with length {length}, allocated {expected}")
        self.freed.append((ptr, length))

    def _set_model_path(self, data: Any, length: int) -> int:
        self.model_paths.append(bytes(data)[:length].decode("utf-8"))
        return self.model_status


class FakeEngineAdapter(EngineAdapter):
    """Pure-Python adapter: fixed response or status, counts releases and frees."""

    def __init__(self, response: bytes | None = b'{"results":[]}', *, status: int = 0) -> None:
        self.response = response
        self.status = status
        self.payloads: list[bytes] = []
        self.model_paths: list[Any] = []
        self.freed: list[tuple[int, int]] = []
        self.releases = 0
        self.reader: Callable[[int, int], bytes] | None = None
        self._next_ptr = 0x1000

    def analyze(self, payload: bytes) -> ResponseBuffer:
        self.payloads.append(payload)
        if self.status != 0:
            raise EngineCallError(self.status)
        if self.response is None:
            return ResponseBuffer(None, 0, owner=self)
        data = self.response
        ptr = self._next_ptr
        self._next_ptr += 0x100
        reader = self.reader or (lambda p, n: data[:n])
        return ResponseBuffer(ptr, len(data), owner=self, reader=reader)

    def set_model_path(self, path: Any) -> None:
        self.model_paths.append(path)

    def release(self, buffer: ResponseBuffer) -> None:
        self.releases += 1
        super().release(buffer)

    def _free(self, ptr: int, length: int) -> None:
        self.freed.append((ptr, length))


@pytest.fixture
def fake_engine_lib():
    return FakeEngineLib()


@pytest.fixture
def fake_adapter():
    return FakeEngineAdapter()


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    """
    Unset every NOCHEAT_* and LOG_* variable and run from an empty directory so no .env
    is picked up.
    """
    for name in (
        "NOCHEAT_LIBRARY_PATH",
        "NOCHEAT_LIBRARY_DIRS",
        "NOCHEAT_MODEL_PATH",
        "NOCHEAT_ID_FIELD",
        "NOCHEAT_MALFORMED_POLICY",
        "NOCHEAT_ENGINE_THREAD_SAFE",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        # setenv first so teardown also removes values that load_dotenv writes.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def engine_library_file(tmp_path):
    """An (empty) file with the platform engine library name."""
    path = tmp_path / library_filename()
    path.write_bytes(b"")
    return path
