"""
Hour-precision deduplication.

A child has at most one authoritative record per (year, month, day, hour).
Two named strategies decide what happens when an incoming record hits an
occupied hour:

- replace_on_conflict: local edits and file imports; the incoming data
  replaces the stored record but keeps its identity.
- skip_on_conflict: device-to-device sync; the local record stays and the
  incoming one is dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import GrowthRecord

HourKey = Tuple[int, int, int, int]


def hour_key(timestamp: datetime) -> HourKey:
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone()
    return (timestamp.year, timestamp.month, timestamp.day, timestamp.hour)


@dataclass
class MergeResult:
    records: List[GrowthRecord] = field(default_factory=list)
    added: int = 0
    replaced: int = 0
    skipped: int = 0


def _index(records: Iterable[GrowthRecord]) -> Dict[HourKey, int]:
    index: Dict[HourKey, int] = {}
    for position, record in enumerate(records):
        index.setdefault(hour_key(record.timestamp), position)
    return index


def replace_on_conflict(
    existing: List[GrowthRecord],
    incoming: Iterable[GrowthRecord],
    now: Optional[datetime] = None,
) -> MergeResult:
    now = now or datetime.now()
    result = MergeResult(records=list(existing))
    index = _index(result.records)
    for record in incoming:
        key = hour_key(record.timestamp)
        position = index.get(key)
        if position is None:
            if record.created_at is None:
                record = record.model_copy(update={"created_at": now})
            index[key] = len(result.records)
            result.records.append(record)
            result.added += 1
        else:
            current = result.records[position]
            result.records[position] = record.model_copy(
                update={
                    "id": current.id,
                    "child_id": current.child_id,
                    "created_at": current.created_at or now,
                    "updated_at": now,
                }
            )
            result.replaced += 1
    return result


def skip_on_conflict(
    existing: List[GrowthRecord],
    incoming: Iterable[GrowthRecord],
    now: Optional[datetime] = None,
) -> MergeResult:
    now = now or datetime.now()
    result = MergeResult(records=list(existing))
    index = _index(result.records)
    for record in incoming:
        key = hour_key(record.timestamp)
        if key in index:
            result.skipped += 1
            continue
        if record.created_at is None:
            record = record.model_copy(update={"created_at": now})
        index[key] = len(result.records)
        result.records.append(record)
        result.added += 1
    return result


MergeStrategy = Callable[..., MergeResult]

MERGE_STRATEGIES: Dict[str, MergeStrategy] = {
    "replace": replace_on_conflict,
    "skip": skip_on_conflict,
}


def reduce_for_export(records: Iterable[GrowthRecord]) -> List[GrowthRecord]:
    """Latest record per hour key, newest first."""
    latest: Dict[HourKey, GrowthRecord] = {}
    for record in records:
        key = hour_key(record.timestamp)
        kept = latest.get(key)
        if kept is None or record.timestamp >= kept.timestamp:
            latest[key] = record
    return sorted(latest.values(), key=lambda r: r.timestamp, reverse=True)
