"""
Child profiles and growth records over an injected key-value storage.

The store is the only place records are mutated. Every read-merge-write of a
child's records runs under that child's lock so two imports for the same
child cannot lose each other's update.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from .errors import NotFound
from .merge import MERGE_STRATEGIES, MergeResult, hour_key
from .models import ChildProfile, GrowthRecord

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStorage:
    """All keys in one JSON document on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False)
        tmp.replace(self.path)


def new_id() -> str:
    return uuid.uuid4().hex


class GrowthStore:
    CHILDREN_KEY = "children"
    RECORDS_KEY = "records"

    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage = storage if storage is not None else MemoryStorage()
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        # guards the two dicts and every snapshot written to storage;
        # always taken after a child lock, never before one
        self._lock = threading.RLock()
        self._children: Dict[str, ChildProfile] = {}
        self._records: Dict[str, List[GrowthRecord]] = {}
        self._load()

    # --- persistence ---

    def _load(self) -> None:
        children = self.storage.get(self.CHILDREN_KEY)
        if children:
            for item in json.loads(children):
                child = ChildProfile.model_validate(item)
                self._children[child.id] = child
        records = self.storage.get(self.RECORDS_KEY)
        if records:
            for child_id, items in json.loads(records).items():
                self._records[child_id] = [GrowthRecord.model_validate(item) for item in items]
        logger.debug("Loaded %s child(ren) from storage", len(self._children))

    def _save(self) -> None:
        with self._lock:
            children = [c.model_dump(mode="json", by_alias=True) for c in self._children.values()]
            records = {
                child_id: [r.model_dump(mode="json", by_alias=True) for r in items]
                for child_id, items in self._records.items()
            }
            self.storage.set(self.CHILDREN_KEY, json.dumps(children, ensure_ascii=False))
            self.storage.set(self.RECORDS_KEY, json.dumps(records, ensure_ascii=False))

    @contextmanager
    def child_lock(self, child_id: str) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.setdefault(child_id, threading.Lock())
        with lock:
            yield

    # --- children ---

    def list_children(self) -> List[ChildProfile]:
        with self._lock:
            return list(self._children.values())

    def get_child(self, child_id: str) -> ChildProfile:
        try:
            return self._children[child_id]
        except KeyError:
            raise NotFound(f"child {child_id} not found")

    def find_child_by_name(self, name: str) -> Optional[ChildProfile]:
        with self._lock:
            for child in self._children.values():
                if child.name == name:
                    return child
        return None

    def add_child(self, name: str, birth_date: date, now: Optional[datetime] = None) -> ChildProfile:
        child = ChildProfile(id=new_id(), name=name, birth_date=birth_date, created_at=now or datetime.now())
        with self._lock:
            self._children[child.id] = child
            self._records.setdefault(child.id, [])
            self._save()
        logger.info("Added child %s", child.id)
        return child

    def update_child(self, child_id: str, now: Optional[datetime] = None, **changes) -> ChildProfile:
        changes = {key: value for key, value in changes.items() if value is not None}
        with self._lock:
            current = self.get_child(child_id)
            updated = ChildProfile.model_validate(
                {**current.model_dump(), **changes, "id": current.id, "updated_at": now or datetime.now()}
            )
            self._children[child_id] = updated
            self._save()
        return updated

    def resolve_child(self, name: str, birth_date: date, now: Optional[datetime] = None) -> Tuple[ChildProfile, bool]:
        """
        Find a child by name and update it, or create it.

        Returns the child and whether it was created. Lookup and insert run
        under one lock so concurrent callers never create the same name twice.
        """
        with self._lock:
            child = self.find_child_by_name(name)
            if child is None:
                return self.add_child(name, birth_date, now=now), True
            return self.update_child(child.id, name=name, birth_date=birth_date, now=now), False

    def delete_child(self, child_id: str) -> None:
        self.get_child(child_id)
        with self.child_lock(child_id):
            with self._lock:
                self.get_child(child_id)
                del self._children[child_id]
                self._records.pop(child_id, None)
                self._save()
        logger.info("Deleted child %s and its records", child_id)

    # --- records ---

    def records(self, child_id: str) -> List[GrowthRecord]:
        """The child's records, newest first."""
        self.get_child(child_id)
        return sorted(self._records.get(child_id, []), key=lambda r: r.timestamp, reverse=True)

    def _replace_records(self, child_id: str, records: List[GrowthRecord]) -> None:
        with self._lock:
            self.get_child(child_id)
            self._records[child_id] = records
            self._save()

    def merge_records(
        self,
        child_id: str,
        incoming: Iterable[GrowthRecord],
        strategy: str = "replace",
        now: Optional[datetime] = None,
    ) -> MergeResult:
        """
        Merge records into a child's set with the named strategy
        (``replace`` for local edits/imports, ``skip`` for sync).
        """
        merge = MERGE_STRATEGIES[strategy]
        self.get_child(child_id)
        prepared = [
            record.model_copy(update={"id": new_id(), "child_id": child_id, "updated_at": None})
            for record in incoming
        ]
        with self.child_lock(child_id):
            result = merge(self._records.get(child_id, []), prepared, now=now)
            self._replace_records(child_id, result.records)
        logger.info(
            "Merged records for child %s (%s): added=%s replaced=%s skipped=%s",
            child_id,
            strategy,
            result.added,
            result.replaced,
            result.skipped,
        )
        return result

    def add_record(
        self,
        child_id: str,
        timestamp: datetime,
        height: float,
        weight: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> GrowthRecord:
        record = GrowthRecord(timestamp=timestamp, height=height, weight=weight)
        self.merge_records(child_id, [record], strategy="replace", now=now)
        return self._find_by_hour(child_id, record.timestamp)

    def _find_by_hour(self, child_id: str, timestamp: datetime) -> GrowthRecord:
        key = hour_key(timestamp)
        for record in self._records.get(child_id, []):
            if hour_key(record.timestamp) == key:
                return record
        raise NotFound(f"no record for child {child_id} at {timestamp}")

    def get_record(self, child_id: str, record_id: str) -> GrowthRecord:
        self.get_child(child_id)
        for record in self._records.get(child_id, []):
            if record.id == record_id:
                return record
        raise NotFound(f"record {record_id} not found")

    def update_record(self, child_id: str, record_id: str, now: Optional[datetime] = None, **changes) -> GrowthRecord:
        """
        Update fields of one record. Moving it into an hour already held by
        another record replaces that other record.
        """
        changes = {key: value for key, value in changes.items() if value is not None}
        with self.child_lock(child_id):
            current = self.get_record(child_id, record_id)
            updated = GrowthRecord.model_validate(
                {**current.model_dump(), **changes, "id": current.id, "updated_at": now or datetime.now()}
            )
            key = hour_key(updated.timestamp)
            kept = [
                r for r in self._records.get(child_id, [])
                if r.id != record_id and hour_key(r.timestamp) != key
            ]
            kept.append(updated)
            self._replace_records(child_id, kept)
        return updated

    def delete_record(self, child_id: str, record_id: str) -> None:
        with self.child_lock(child_id):
            self.get_record(child_id, record_id)
            self._replace_records(
                child_id, [r for r in self._records.get(child_id, []) if r.id != record_id]
            )
