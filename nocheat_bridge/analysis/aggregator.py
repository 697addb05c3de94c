"""
Request aggregation: many per-entity stats payloads -> one encoded batch.

Each payload is parsed as a JSON object and gets the id field injected with
its mapping key (the injected value always wins over a field of the same
name). Records are emitted sorted by entity id so that the same input always
encodes to the same bytes.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from nocheat_bridge.analysis.models import (
    DEFAULT_ID_FIELD,
    BatchRequest,
    MalformedPolicy,
    StatsRecord,
)
from nocheat_bridge.core.exceptions import Diagnostic, MalformedInputError
from nocheat_bridge.nocheat_logging import bind_entity

Records = Mapping[str, Any] | Iterable[StatsRecord]


def _iter_records(records: Records) -> Iterable[tuple[str, Any]]:
    if isinstance(records, Mapping):
        return records.items()
    return ((r.entity_id, r.payload) for r in records)


def _parse_payload(raw: Any) -> dict[str, Any] | None:
    """Parse one payload into a fresh dict; None if it is not a JSON object."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, (str, bytes, bytearray)):
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def encode_batch(objects: list[dict[str, Any]]) -> bytes:
    """Compact UTF-8 JSON array (no whitespace, non-ASCII kept)."""
    return json.dumps(objects, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def aggregate(
    records: Records,
    *,
    id_field: str = DEFAULT_ID_FIELD,
    policy: MalformedPolicy | str = MalformedPolicy.SKIP,
) -> BatchRequest:
    """
    Build one batch request from per-entity stats.

    Args:
        records: Mapping of entity id -> raw JSON object string (str/bytes) or
            mapping; or an iterable of StatsRecord.
        id_field: Field injected into every object (the stock engine reads player_id).
        policy: SKIP drops malformed payloads; FAIL raises MalformedInputError.

    Returns:
        BatchRequest whose payload is the encoded JSON array.
    """
    policy = MalformedPolicy(policy)
    objects: list[dict[str, Any]] = []
    entity_ids: list[str] = []
    skipped: list[str] = []

    for entity_id, raw in sorted(_iter_records(records), key=lambda item: item[0]):
        parsed = _parse_payload(raw)
        if parsed is None:
            skipped.append(entity_id)
            bind_entity(entity_id).warning(
                Diagnostic.MALFORMED_INPUT_SKIP.value,
                payload_type=type(raw).__name__,
                policy=policy.value,
            )
            continue
        parsed[id_field] = entity_id
        objects.append(parsed)
        entity_ids.append(entity_id)

    if skipped and policy is MalformedPolicy.FAIL:
        raise MalformedInputError(skipped)

    return BatchRequest(
        payload=encode_batch(objects),
        record_count=len(objects),
        entity_ids=tuple(entity_ids),
        skipped=tuple(skipped),
    )
