"""
Per-round player stats in the layout the stock engine deserializes.

Game servers that do not already produce JSON can build payloads here:
per-weapon shot and hit counts, total headshots, optional raw shot timestamps
and an optional training label (1.0 cheater, 0.0 legitimate). The player id
is not part of the payload; the aggregator injects it from the mapping key.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable


def _check_counts(name: str, counts: dict[str, int]) -> None:
    for weapon, value in counts.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{name}[{weapon!r}] must be a non-negative int; got {value!r}")


@dataclass
class PlayerStats:
    player_id: str
    shots_fired: dict[str, int] = field(default_factory=dict)
    hits: dict[str, int] = field(default_factory=dict)
    headshots: int = 0
    shot_timestamps_ms: list[int] | None = None
    training_label: float | None = None

    def __post_init__(self) -> None:
        _check_counts("shots_fired", self.shots_fired)
        _check_counts("hits", self.hits)
        if isinstance(self.headshots, bool) or not isinstance(self.headshots, int) or self.headshots < 0:
            raise ValueError(f"headshots must be a non-negative int; got {self.headshots!r}")
        if self.training_label is not None and self.training_label not in (0.0, 1.0):
            raise ValueError(f"training_label must be 0.0 or 1.0; got {self.training_label!r}")

    @property
    def total_shots(self) -> int:
        return sum(self.shots_fired.values())

    @property
    def total_hits(self) -> int:
        return sum(self.hits.values())

    def to_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "shots_fired": dict(self.shots_fired),
            "hits": dict(self.hits),
            "headshots": self.headshots,
            "shot_timestamps_ms": list(self.shot_timestamps_ms) if self.shot_timestamps_ms is not None else None,
        }
        if self.training_label is not None:
            out["training_label"] = float(self.training_label)
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), separators=(",", ":"))


def build_stats_mapping(stats: Iterable[PlayerStats]) -> dict[str, str]:
    """Return {player_id: payload JSON} ready for AnalysisBridge.analyze_batch."""
    return {s.player_id: s.to_json() for s in stats}
