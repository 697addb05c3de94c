"""
Response decoding: engine JSON payload -> typed AnalysisResult records.

Tolerant by contract: a response that does not parse, or has no "results"
array, decodes to an empty result set; entries that are not JSON objects are
skipped individually. Field-level defaults: empty id, score 0.0, no flags.
Scores are passed through unclamped.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any

from nocheat_bridge.analysis.models import DEFAULT_ID_FIELD, AnalysisResult, ResultSet
from nocheat_bridge.core.exceptions import Diagnostic
from nocheat_bridge.nocheat_logging import get_logger

logger = get_logger(__name__)

RESULTS_FIELD = "results"


@dataclass
class DecodedResponse:
    """Decoded results plus the number of array entries skipped as non-objects."""

    results: ResultSet = field(default_factory=list)
    skipped: int = 0


def _score(value: Any) -> float:
    # bool is an int subclass but JSON true/false is not a score.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        return float(value)
    except OverflowError:
        # JSON integers are unbounded; keep the sign, unclamped.
        return math.inf if value > 0 else -math.inf


def _flags(value: Any) -> frozenset[str]:
    if not isinstance(value, list):
        return frozenset()
    return frozenset(flag for flag in value if isinstance(flag, str))


def decode_entry(entry: dict[str, Any], *, id_field: str = DEFAULT_ID_FIELD) -> AnalysisResult:
    """Decode one result object, applying per-field defaults."""
    entity_id = entry.get(id_field)
    return AnalysisResult(
        entity_id=entity_id if isinstance(entity_id, str) else "",
        suspicion_score=_score(entry.get("suspicion_score")),
        flags=_flags(entry.get("flags")),
    )


def decode_response(payload: bytes | str, *, id_field: str = DEFAULT_ID_FIELD) -> DecodedResponse:
    """Decode a full engine response; never raises for malformed content."""
    try:
        document = json.loads(payload)
    except (ValueError, RecursionError) as exc:
        # ValueError covers JSONDecodeError and invalid UTF-8.
        logger.warning("malformed_response", reason="unparseable", error=str(exc), length=len(payload))
        return DecodedResponse()

    if not isinstance(document, dict):
        logger.warning("malformed_response", reason="not_an_object", top_level=type(document).__name__)
        return DecodedResponse()
    entries = document.get(RESULTS_FIELD)
    if not isinstance(entries, list):
        logger.warning("malformed_response", reason="missing_results_array")
        return DecodedResponse()

    out = DecodedResponse()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            out.skipped += 1
            logger.warning(
                Diagnostic.MALFORMED_RESULT_SKIP.value,
                index=index,
                entry_type=type(entry).__name__,
            )
            continue
        out.results.append(decode_entry(entry, id_field=id_field))
    return out


def decode(payload: bytes | str, *, id_field: str = DEFAULT_ID_FIELD) -> ResultSet:
    """Decode an engine response into results, in response order."""
    return decode_response(payload, id_field=id_field).results
