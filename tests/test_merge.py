from datetime import datetime

from growthsync.merge import (
    MERGE_STRATEGIES,
    hour_key,
    reduce_for_export,
    replace_on_conflict,
    skip_on_conflict,
)
from growthsync.models import GrowthRecord

NOW = datetime(2025, 6, 1, 12, 0)
CREATED = datetime(2024, 3, 15, 10, 6)


def record(ts, height=100.0, weight=None, **extra):
    return GrowthRecord(timestamp=ts, height=height, weight=weight, **extra)


def existing():
    return [record(datetime(2024, 3, 15, 10, 5), 100.0, 20.0, id="a", child_id="c1", created_at=CREATED)]


def test_hour_key():
    assert hour_key(datetime(2024, 3, 15, 10, 5)) == (2024, 3, 15, 10)
    assert hour_key(datetime(2024, 3, 15, 10, 55)) == hour_key(datetime(2024, 3, 15, 10, 5))
    assert hour_key(datetime(2024, 3, 15, 11, 0)) != hour_key(datetime(2024, 3, 15, 10, 59))


def test_replace_keeps_identity_and_takes_new_data():
    result = replace_on_conflict(existing(), [record(datetime(2024, 3, 15, 10, 55), 101.0, id="new")], now=NOW)
    assert (result.added, result.replaced, result.skipped) == (0, 1, 0)
    assert len(result.records) == 1
    merged = result.records[0]
    assert merged.id == "a"
    assert merged.child_id == "c1"
    assert merged.height == 101.0
    assert merged.weight is None
    assert merged.timestamp == datetime(2024, 3, 15, 10, 55)
    assert merged.created_at == CREATED
    assert merged.updated_at == NOW


def test_skip_keeps_local_record():
    result = skip_on_conflict(existing(), [record(datetime(2024, 3, 15, 10, 55), 101.0)], now=NOW)
    assert (result.added, result.replaced, result.skipped) == (0, 0, 1)
    assert len(result.records) == 1
    assert result.records[0].height == 100.0
    assert result.records[0].timestamp == datetime(2024, 3, 15, 10, 5)


def test_new_hours_are_appended_with_created_at():
    for merge in (replace_on_conflict, skip_on_conflict):
        result = merge(existing(), [record(datetime(2024, 3, 15, 11, 0), 102.0)], now=NOW)
        assert result.added == 1
        assert len(result.records) == 2
        assert result.records[-1].created_at == NOW


def test_duplicates_inside_incoming_batch():
    batch = [record(datetime(2024, 4, 1, 9, 0), 105.0), record(datetime(2024, 4, 1, 9, 30), 106.0)]
    replaced = replace_on_conflict([], batch, now=NOW)
    assert [r.height for r in replaced.records] == [106.0]
    assert (replaced.added, replaced.replaced) == (1, 1)

    skipped = skip_on_conflict([], batch, now=NOW)
    assert [r.height for r in skipped.records] == [105.0]
    assert (skipped.added, skipped.skipped) == (1, 1)


def test_existing_list_is_not_mutated():
    current = existing()
    replace_on_conflict(current, [record(datetime(2024, 3, 15, 11, 0))], now=NOW)
    assert len(current) == 1


def test_strategies_are_named():
    assert MERGE_STRATEGIES == {"replace": replace_on_conflict, "skip": skip_on_conflict}


def test_export_reduction_keeps_latest_and_sorts_newest_first():
    records = [
        record(datetime(2024, 3, 15, 10, 5), 100.0),
        record(datetime(2024, 1, 1, 8, 0), 98.0),
        record(datetime(2024, 3, 15, 10, 55), 100.4),
        record(datetime(2024, 3, 16, 10, 0), 100.6, weight=21.0),
    ]
    reduced = reduce_for_export(records)
    assert [r.timestamp for r in reduced] == [
        datetime(2024, 3, 16, 10, 0),
        datetime(2024, 3, 15, 10, 55),
        datetime(2024, 1, 1, 8, 0),
    ]
    assert reduced[1].height == 100.4
