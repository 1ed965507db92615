"""
Device-to-device transfer codes.

A code is base64 over the UTF-8 bytes of a JSON envelope::

    {"version": "1.0", "timestamp": ..., "child": {...}, "records": [...]}

Children are matched by name on import (ids are device-local) and records
are merged with skip_on_conflict, so a local observation for an hour is never
overwritten by an inbound one.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Iterable, Optional

from pydantic import ValidationError

from .errors import SyncFormatError
from .models import ChildProfile, GrowthRecord, SyncPayload, SyncResult
from .rules import SYNC_VERSION
from .store import GrowthStore

logger = logging.getLogger(__name__)


def encode_sync_payload(
    child: ChildProfile,
    records: Iterable[GrowthRecord],
    now: Optional[datetime] = None,
) -> str:
    payload = SyncPayload(
        version=SYNC_VERSION,
        timestamp=now or datetime.now(),
        child=child,
        records=list(records),
    )
    text = json.dumps(payload.model_dump(mode="json", by_alias=True), ensure_ascii=False)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_sync_payload(code: str) -> SyncPayload:
    """
    Reverse encode_sync_payload.

    Any code that is not a complete, supported envelope raises
    SyncFormatError; nothing is partially decoded.
    """
    compact = "".join((code or "").split())
    if not compact:
        raise SyncFormatError("empty sync code")
    try:
        raw = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise SyncFormatError("sync code is not valid base64")
    try:
        data = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError:
        raise SyncFormatError("sync code does not contain UTF-8 text")
    except json.JSONDecodeError:
        raise SyncFormatError("sync code does not contain a sync envelope")

    if not isinstance(data, dict):
        raise SyncFormatError("sync code does not contain a sync envelope")
    version = data.get("version")
    if version != SYNC_VERSION:
        raise SyncFormatError(f"unsupported sync data version {version!r}; expected {SYNC_VERSION!r}")

    try:
        return SyncPayload.model_validate(data)
    except ValidationError as exc:
        raise SyncFormatError(f"invalid sync envelope: {exc.error_count()} problem(s)") from exc


def apply_sync_payload(store: GrowthStore, payload: SyncPayload, now: Optional[datetime] = None) -> SyncResult:
    now = now or datetime.now()
    incoming = payload.child
    child, created = store.resolve_child(incoming.name, incoming.birth_date, now=now)

    result = store.merge_records(child.id, payload.records, strategy="skip", now=now)
    logger.info(
        "Synced child %s (%s): added=%s skipped=%s",
        child.id,
        "created" if created else "updated",
        result.added,
        result.skipped,
    )
    return SyncResult(child=child, child_created=created, added=result.added, skipped=result.skipped)


def import_sync_code(store: GrowthStore, code: str, now: Optional[datetime] = None) -> SyncResult:
    """Decode first so a rejected code never touches the store."""
    payload = decode_sync_payload(code)
    return apply_sync_payload(store, payload, now=now)


def export_sync_code(store: GrowthStore, child_id: str, now: Optional[datetime] = None) -> str:
    child = store.get_child(child_id)
    return encode_sync_payload(child, store.records(child_id), now=now)
