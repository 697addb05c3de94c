"""
Data models for batch requests and analysis results.

StatsRecord in, BatchRequest on the wire, AnalysisResult out. BatchReport
carries the diagnostics of one analyze_batch call alongside its results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from nocheat_bridge.config.env import DEFAULT_ID_FIELD


class MalformedPolicy(str, Enum):
    """What the aggregator does with a payload that is not a JSON object."""

    SKIP = "skip"
    """Drop the entry, log it, report it in BatchRequest.skipped."""
    FAIL = "fail"
    """Reject the whole batch with MalformedInputError."""


@dataclass(frozen=True)
class StatsRecord:
    """One entity's raw stats: a JSON object string (or an already-parsed mapping)."""

    entity_id: str
    payload: Any


@dataclass(frozen=True)
class BatchRequest:
    """
    Encoded batch, immutable once built.

    payload: UTF-8 JSON array, one object per surviving record, sorted by entity id.
    record_count: number of objects in payload.
    entity_ids: ids in payload order.
    skipped: ids dropped as malformed (skip policy).
    """

    payload: bytes
    record_count: int
    entity_ids: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """
    Engine verdict for one entity.

    suspicion_score is passed through as received; its range is engine-defined
    and not clamped here.
    """

    entity_id: str = ""
    suspicion_score: float = 0.0
    flags: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "suspicion_score": self.suspicion_score,
            "flags": sorted(self.flags),
        }


ResultSet = list[AnalysisResult]


@dataclass
class BatchReport:
    """
    Outcome of one analyze_batch call.

    results: decoded results in engine order (empty when degraded).
    submitted: records sent to the engine.
    skipped_inputs: entity ids dropped before the call.
    skipped_results: response entries that were not JSON objects.
    error: the LoadError / EngineCallError / MalformedInputError that degraded
        the batch, or None.
    """

    results: ResultSet = field(default_factory=list)
    submitted: int = 0
    skipped_inputs: tuple[str, ...] = ()
    skipped_results: int = 0
    error: Exception | None = None

    @property
    def degraded(self) -> bool:
        """True when the engine produced no analysis for this batch."""
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "results": [r.to_dict() for r in self.results],
            "submitted": self.submitted,
            "skipped_inputs": list(self.skipped_inputs),
            "skipped_results": self.skipped_results,
            "degraded": self.degraded,
        }
        if self.error is not None:
            out["error"] = {"type": type(self.error).__name__, "message": str(self.error)}
        return out
