"""
Import/export through the platform file capability.

The capability is injected and async; each operation makes one call at a
time. Failures of the capability itself become FileAccessError, kept apart
from the content validation categories.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from .csv_codec import encode_csv, export_file_name, import_csv_bytes
from .errors import FileAccessError, ImportFailed, NoDataFound
from .models import ImportResponse
from .rules import EXPORT_MIME_TYPE
from .store import GrowthStore

logger = logging.getLogger(__name__)


class FileCapability(Protocol):
    async def pick_file(self) -> Optional[Dict[str, Any]]: ...

    async def read_file(self, *, path: str, encoding: Optional[str]) -> Dict[str, Any]: ...

    async def save_file(self, *, content: bytes, file_name: str, mime_type: str) -> Dict[str, Any]: ...


async def import_from_file(
    files: FileCapability,
    store: GrowthStore,
    child_id: str,
    now: Optional[datetime] = None,
) -> Optional[ImportResponse]:
    """
    Pick, read, parse and merge a file into a child's records.

    Returns None when the user cancels the picker.
    """
    store.get_child(child_id)
    try:
        picked = await files.pick_file()
    except Exception as exc:
        raise FileAccessError(f"could not pick a file: {exc}") from exc
    if not picked or not picked.get("path"):
        logger.info("File import cancelled")
        return None

    try:
        # no encoding: ask for raw bytes, decode_bytes handles the rest
        response = await files.read_file(path=picked["path"], encoding=None)
    except Exception as exc:
        raise FileAccessError(f"could not read {picked['path']}: {exc}") from exc

    content = (response or {}).get("content")
    if not content:
        raise ImportFailed.single("format", "could not read file content", value=picked["path"])
    if isinstance(content, str):
        content = content.encode("utf-8")

    parsed = import_csv_bytes(content, now=now)
    merged = store.merge_records(child_id, parsed.records, strategy="replace", now=now)
    return ImportResponse(
        child_id=child_id,
        child_name=parsed.child_name,
        added=merged.added,
        replaced=merged.replaced,
        encoding=parsed.encoding,
    )


async def export_to_file(
    files: FileCapability,
    store: GrowthStore,
    child_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    child = store.get_child(child_id)
    records = store.records(child_id)
    if not records:
        raise NoDataFound(f"no records to export for {child.name}")

    content = encode_csv(records, child.name)
    file_name = export_file_name(child.name, now)
    try:
        result = await files.save_file(content=content, file_name=file_name, mime_type=EXPORT_MIME_TYPE)
    except Exception as exc:
        raise FileAccessError(f"could not save {file_name}: {exc}") from exc

    logger.info("Exported %s record(s) to %s", len(records), file_name)
    return result or {}
