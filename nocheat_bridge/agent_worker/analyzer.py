"""
Background analyzer: runs analyze_batch off the caller's thread.

The engine call blocks for an unbounded time and has no cancellation, so a
host with a latency-sensitive loop (game tick, request handler) submits
batches here and collects the BatchReport from a Future or a callback. One
worker thread keeps batches in submission order; the adapter serializes the
engine either way.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from nocheat_bridge.analysis.aggregator import Records
from nocheat_bridge.analysis.bridge import AnalysisBridge
from nocheat_bridge.analysis.models import BatchReport
from nocheat_bridge.nocheat_logging import get_logger

logger = get_logger(__name__)

DEFAULT_THREAD_NAME_PREFIX = "nocheat-analysis"

ReportCallback = Callable[[BatchReport], None]


class BackgroundAnalyzer:
    """
    Single-worker executor around an AnalysisBridge.

    Args:
        bridge: Bridge to run batches through.
        thread_name_prefix: Name prefix for the worker thread.

    Usage:
        with BackgroundAnalyzer(bridge) as worker:
            future = worker.submit(round_stats, on_complete=publish)
    """

    def __init__(
        self,
        bridge: AnalysisBridge,
        *,
        thread_name_prefix: str = DEFAULT_THREAD_NAME_PREFIX,
    ) -> None:
        self._bridge = bridge
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=thread_name_prefix)
        self._lock = threading.Lock()
        self._closed = False
        self._submitted = 0
        self._completed = 0

    @property
    def submitted(self) -> int:
        return self._submitted

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def pending(self) -> int:
        with self._lock:
            return self._submitted - self._completed

    def _run(self, records: Records, batch_number: int) -> BatchReport:
        try:
            report = self._bridge.analyze_batch_report(records)
        finally:
            with self._lock:
                self._completed += 1
        logger.debug(
            "background_batch_done",
            batch_number=batch_number,
            result_count=len(report.results),
            degraded=report.degraded,
        )
        return report

    def submit(self, records: Records, *, on_complete: ReportCallback | None = None) -> Future[BatchReport]:
        """
        Queue one batch. The records are snapshotted so the caller may keep
        mutating its own mapping. Raises RuntimeError after close().
        """
        snapshot = dict(records) if isinstance(records, Mapping) else list(records)
        with self._lock:
            if self._closed:
                raise RuntimeError("BackgroundAnalyzer is closed")
            self._submitted += 1
            batch_number = self._submitted
            future = self._executor.submit(self._run, snapshot, batch_number)
        if on_complete is not None:
            future.add_done_callback(lambda f: self._deliver(f, on_complete, batch_number))
        return future

    def _deliver(self, future: Future[BatchReport], callback: ReportCallback, batch_number: int) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("background_batch_failed", batch_number=batch_number, error=str(exc), exc_info=exc)
            return
        try:
            callback(future.result())
        except Exception as e:
            logger.warning("background_callback_failed", batch_number=batch_number, error=str(e), exc_info=True)

    def close(self, *, wait: bool = True) -> None:
        """Stop accepting batches. With wait=True, block until queued batches finish."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BackgroundAnalyzer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close(wait=True)
