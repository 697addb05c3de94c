"""
Analysis package: batch request aggregation, response decoding and the
bridge that runs one batch through the engine.
"""

from nocheat_bridge.analysis.aggregator import aggregate, encode_batch
from nocheat_bridge.analysis.bridge import AnalysisBridge
from nocheat_bridge.analysis.decoder import DecodedResponse, decode, decode_response
from nocheat_bridge.analysis.models import (
    DEFAULT_ID_FIELD,
    AnalysisResult,
    BatchReport,
    BatchRequest,
    MalformedPolicy,
    ResultSet,
    StatsRecord,
)
from nocheat_bridge.analysis.player_stats import PlayerStats, build_stats_mapping

__all__ = [
    "aggregate",
    "encode_batch",
    "AnalysisBridge",
    "DecodedResponse",
    "decode",
    "decode_response",
    "DEFAULT_ID_FIELD",
    "AnalysisResult",
    "BatchReport",
    "BatchRequest",
    "MalformedPolicy",
    "ResultSet",
    "StatsRecord",
    "PlayerStats",
    "build_stats_mapping",
]
