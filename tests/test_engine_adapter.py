"""
Tests for the engine adapter and response buffer ownership.

CtypesEngineAdapter runs against FakeEngineLib (conftest), which allocates
real ctypes buffers and checks every free against what it handed out.
"""

from __future__ import annotations

import ctypes
import threading
from types import SimpleNamespace

import pytest

from conftest import FakeEngineAdapter, FakeEngineLib
from nocheat_bridge.core.exceptions import (
    BufferOwnershipError,
    EngineCallError,
    EngineErrorKind,
    LoadError,
    ModelPathError,
    ModelPathErrorKind,
)
from nocheat_bridge.engine.adapter import CtypesEngineAdapter, EngineSymbols
from nocheat_bridge.engine.buffer import ResponseBuffer


# -----------------------------------------------------------------------------
# ResponseBuffer
# -----------------------------------------------------------------------------


def test_buffer_read_copies_bytes():
    buf = ResponseBuffer(0x10, 3, reader=lambda p, n: b"abcdef"[:n])
    assert buf.read() == b"abc"
    assert not buf.is_empty


def test_null_pointer_buffer_is_empty_whatever_the_length():
    buf = ResponseBuffer(None, 5)
    assert buf.length == 0
    assert buf.is_empty
    assert buf.read() == b""


def test_read_after_detach_raises():
    buf = ResponseBuffer(0x10, 1, reader=lambda p, n: b"x")
    buf.detach()
    assert buf.released
    with pytest.raises(BufferOwnershipError):
        buf.read()


def test_detach_twice_raises():
    buf = ResponseBuffer(0x10, 1)
    assert buf.detach() == (0x10, 1)
    with pytest.raises(BufferOwnershipError):
        buf.detach()


# -----------------------------------------------------------------------------
# EngineAdapter.release
# -----------------------------------------------------------------------------


def test_release_frees_exact_pair_once():
    adapter = FakeEngineAdapter(b'{"results":[]}')
    buf = adapter.analyze(b"[]")
    adapter.release(buf)
    assert adapter.freed == [(buf.ptr, len(b'{"results":[]}'))]
    with pytest.raises(BufferOwnershipError):
        adapter.release(buf)
    assert len(adapter.freed) == 1


def test_release_of_empty_buffer_skips_free():
    adapter = FakeEngineAdapter(None)
    buf = adapter.analyze(b"[]")
    adapter.release(buf)
    assert buf.released
    assert adapter.freed == []


def test_release_through_foreign_adapter_raises():
    producer = FakeEngineAdapter(b"{}")
    other = FakeEngineAdapter(b"{}")
    buf = producer.analyze(b"[]")
    with pytest.raises(BufferOwnershipError):
        other.release(buf)
    assert not buf.released
    assert other.freed == []


# -----------------------------------------------------------------------------
# CtypesEngineAdapter
# -----------------------------------------------------------------------------


def test_prototypes_are_configured(fake_engine_lib):
    CtypesEngineAdapter(fake_engine_lib)
    assert fake_engine_lib.analyze_round.restype is ctypes.c_int32
    assert len(fake_engine_lib.analyze_round.argtypes) == 4
    assert fake_engine_lib.free_buffer.argtypes == [ctypes.c_void_p, ctypes.c_size_t]
    assert fake_engine_lib.free_buffer.restype is None
    assert fake_engine_lib.set_model_path.restype is ctypes.c_int32


def test_analyze_round_trip_and_release(fake_engine_lib):
    adapter = CtypesEngineAdapter(fake_engine_lib)
    buf = adapter.analyze(b'[{"hits":95,"entity_id":"p1"}]')
    assert fake_engine_lib.requests == [b'[{"hits":95,"entity_id":"p1"}]']
    body = buf.read()
    assert b'"p1"' in body
    adapter.release(buf)
    assert fake_engine_lib.freed == [(buf.ptr, len(body))]
    assert fake_engine_lib.live == {}


def test_copied_response_outlives_release(fake_engine_lib):
    adapter = CtypesEngineAdapter(fake_engine_lib)
    buf = adapter.analyze(b'[{"hits":1,"entity_id":"p1"}]')
    body = buf.read()
    adapter.release(buf)
    assert body.startswith(b'{"results"')


def test_null_output_is_released_without_free():
    lib = FakeEngineLib(lambda request: (0, None))
    adapter = CtypesEngineAdapter(lib)
    buf = adapter.analyze(b"[]")
    assert buf.is_empty
    adapter.release(buf)
    assert lib.free_buffer.calls == 0


@pytest.mark.parametrize(
    "status,kind",
    [
        (-1, EngineErrorKind.NULL_POINTER),
        (-2, EngineErrorKind.PARSE_ERROR),
        (-3, EngineErrorKind.ANALYSIS_ERROR),
        (-4, EngineErrorKind.SERIALIZATION_ERROR),
        (-5, EngineErrorKind.ALLOCATION_ERROR),
        (-99, EngineErrorKind.UNKNOWN),
        (7, EngineErrorKind.UNKNOWN),
    ],
)
def test_nonzero_status_maps_to_kind_and_skips_free(status, kind):
    lib = FakeEngineLib(lambda request: (status, None))
    adapter = CtypesEngineAdapter(lib)
    with pytest.raises(EngineCallError) as exc_info:
        adapter.analyze(b"[]")
    assert exc_info.value.status == status
    assert exc_info.value.kind is kind
    assert exc_info.value.is_transient is (kind is EngineErrorKind.ALLOCATION_ERROR)
    assert lib.free_buffer.calls == 0


def test_missing_required_symbol_raises_load_error():
    lib = SimpleNamespace(free_buffer=lambda ptr, n: None)
    with pytest.raises(LoadError, match="analyze_round"):
        CtypesEngineAdapter(lib)


def test_custom_symbol_names():
    lib = FakeEngineLib()
    renamed = SimpleNamespace(nc_analyze=lib.analyze_round, nc_free=lib.free_buffer)
    adapter = CtypesEngineAdapter(renamed, symbols=EngineSymbols(analyze="nc_analyze", free="nc_free"))
    adapter.release(adapter.analyze(b"[]"))
    assert lib.analyze_round.calls == 1
    assert not adapter.supports_model_path


def test_set_model_path_passes_utf8_path(fake_engine_lib, tmp_path):
    adapter = CtypesEngineAdapter(fake_engine_lib)
    adapter.set_model_path(tmp_path / "modèle.json")
    assert fake_engine_lib.model_paths == [str(tmp_path / "modèle.json")]


def test_set_model_path_status_raises_model_path_error():
    lib = FakeEngineLib(model_status=-3)
    adapter = CtypesEngineAdapter(lib)
    with pytest.raises(ModelPathError) as exc_info:
        adapter.set_model_path("missing.json")
    assert exc_info.value.kind is ModelPathErrorKind.FILE_NOT_FOUND
    assert exc_info.value.path == "missing.json"


def test_set_model_path_unexported_raises_load_error():
    adapter = CtypesEngineAdapter(FakeEngineLib(export_model_path=False))
    assert not adapter.supports_model_path
    with pytest.raises(LoadError, match="set_model_path"):
        adapter.set_model_path("model.json")


def test_engine_calls_are_serialized_across_threads():
    """With the default thread_safe=False no two threads are inside analyze_round at once."""
    lib = FakeEngineLib(delay=0.02)
    adapter = CtypesEngineAdapter(lib)
    errors: list[BaseException] = []

    def worker(i: int) -> None:
        try:
            buf = adapter.analyze(f'[{{"hits":{i},"entity_id":"p{i}"}}]'.encode())
            buf.read()
            adapter.release(buf)
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert lib.max_active == 1
    assert len(lib.requests) == 4
    assert len(lib.freed) == 4
    assert lib.live == {}


def test_close_waits_for_outstanding_buffer(fake_engine_lib):
    adapter = CtypesEngineAdapter(fake_engine_lib)
    buf = adapter.analyze(b'[{"hits":10,"entity_id":"p1"}]')

    closer = threading.Thread(target=adapter.close)
    closer.start()
    closer.join(timeout=0.1)
    assert closer.is_alive()
    assert adapter.closed

    adapter.release(buf)
    closer.join(timeout=5)
    assert not closer.is_alive()
    assert fake_engine_lib.live == {}


def test_closed_adapter_refuses_new_calls(fake_engine_lib):
    adapter = CtypesEngineAdapter(fake_engine_lib)
    adapter.close()
    with pytest.raises(LoadError):
        adapter.analyze(b"[]")
    with pytest.raises(LoadError):
        adapter.set_model_path("model.json")
    assert fake_engine_lib.analyze_round.calls == 0
    assert fake_engine_lib.model_paths == []


def test_failed_and_empty_calls_do_not_hold_close():
    lib = FakeEngineLib(lambda request: (-2, None), model_status=-3)
    adapter = CtypesEngineAdapter(lib)
    with pytest.raises(EngineCallError):
        adapter.analyze(b"[]")
    with pytest.raises(ModelPathError):
        adapter.set_model_path("model.json")
    lib.handler = lambda request: (0, None)
    adapter.release(adapter.analyze(b"[]"))

    closer = threading.Thread(target=adapter.close)
    closer.start()
    closer.join(timeout=5)
    assert not closer.is_alive()
