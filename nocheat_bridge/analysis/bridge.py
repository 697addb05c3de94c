"""
Analysis bridge: aggregate -> engine call -> copy -> release -> decode.

The bridge owns the buffer-release invariant: every buffer the engine returns
on a zero status is copied and then released exactly once, in a finally
block, before decoding starts. Engine failures and an unavailable engine
degrade the batch to an empty result plus a log entry; they never raise.
"""

from __future__ import annotations

import os

from nocheat_bridge.analysis.aggregator import Records, aggregate
from nocheat_bridge.analysis.decoder import decode_response
from nocheat_bridge.analysis.models import (
    DEFAULT_ID_FIELD,
    BatchReport,
    MalformedPolicy,
    ResultSet,
)
from nocheat_bridge.config import BridgeSettings, get_settings
from nocheat_bridge.core.exceptions import EngineCallError, LoadError, MalformedInputError
from nocheat_bridge.engine.adapter import EngineAdapter
from nocheat_bridge.engine.loader import EngineLoader
from nocheat_bridge.nocheat_logging import get_logger

logger = get_logger(__name__)


class AnalysisBridge:
    """
    Synchronous batch analysis against one engine.

    Pass either a ready adapter or a loader that provides one lazily. Calls may
    come from several threads; the adapter serializes entry into the engine.
    The engine call blocks for an unbounded time and cannot be cancelled, so
    latency-sensitive hosts should go through agent_worker.BackgroundAnalyzer.
    """

    def __init__(
        self,
        adapter: EngineAdapter | None = None,
        *,
        loader: EngineLoader | None = None,
        id_field: str = DEFAULT_ID_FIELD,
        malformed_policy: MalformedPolicy | str = MalformedPolicy.SKIP,
        owns_loader: bool = False,
    ) -> None:
        self._adapter = adapter
        self._loader = loader
        self._owns_loader = owns_loader
        self.id_field = id_field
        self.malformed_policy = MalformedPolicy(malformed_policy)

    @classmethod
    def from_settings(cls, settings: BridgeSettings | None = None) -> "AnalysisBridge":
        """Build a bridge with its own EngineLoader from configuration (env by default)."""
        cfg = settings or get_settings()
        loader = EngineLoader(
            cfg.library_path,
            search_dirs=cfg.library_dirs,
            model_path=cfg.model_path,
            thread_safe=cfg.engine_thread_safe,
        )
        return cls(
            loader=loader,
            id_field=cfg.id_field,
            malformed_policy=cfg.malformed_policy,
            owns_loader=True,
        )

    def _resolve_adapter(self) -> EngineAdapter:
        if self._adapter is not None:
            return self._adapter
        if self._loader is None:
            raise LoadError("no engine configured")
        return self._loader.adapter()

    def analyze_batch(self, records: Records) -> ResultSet:
        """Analyze one batch; returns an empty list when the engine call fails or is unavailable."""
        return self.analyze_batch_report(records).results

    def analyze_batch_report(self, records: Records) -> BatchReport:
        """Analyze one batch and return results with skip counts and any degrading error."""
        try:
            batch = aggregate(records, id_field=self.id_field, policy=self.malformed_policy)
        except MalformedInputError as exc:
            logger.warning("batch_rejected", reason="malformed_input", entity_ids=list(exc.entity_ids))
            return BatchReport(skipped_inputs=exc.entity_ids, error=exc)

        report = BatchReport(submitted=batch.record_count, skipped_inputs=batch.skipped)
        if batch.record_count == 0:
            logger.info("batch_empty", skipped_inputs=len(batch.skipped))
            return report

        try:
            adapter = self._resolve_adapter()
        except LoadError as exc:
            logger.error("engine_unavailable", error=str(exc), record_count=batch.record_count)
            report.error = exc
            return report

        try:
            buffer = adapter.analyze(batch.payload)
        except EngineCallError as exc:
            logger.error(
                "engine_call_failed",
                kind=exc.kind.value,
                status=exc.status,
                transient=exc.is_transient,
                record_count=batch.record_count,
            )
            report.error = exc
            return report
        except LoadError as exc:
            # Adapter closed between resolution and the call.
            logger.error("engine_unavailable", error=str(exc), record_count=batch.record_count)
            report.error = exc
            return report

        try:
            response = buffer.read()
        finally:
            adapter.release(buffer)

        decoded = decode_response(response, id_field=self.id_field)
        report.results = decoded.results
        report.skipped_results = decoded.skipped
        logger.info(
            "batch_analyzed",
            record_count=batch.record_count,
            result_count=len(decoded.results),
            skipped_inputs=len(batch.skipped),
            skipped_results=decoded.skipped,
        )
        return report

    def set_model_path(self, path: str | bytes | os.PathLike) -> None:
        """
        Point the engine at a model file before analyses that need it.
        Raises LoadError or ModelPathError; nothing is cached.
        """
        self._resolve_adapter().set_model_path(path)

    def close(self) -> None:
        """Unload the engine if this bridge created its loader."""
        if self._owns_loader and self._loader is not None:
            self._loader.close()

    def __enter__(self) -> "AnalysisBridge":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
