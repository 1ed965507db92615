"""
Canonical growth-record CSV: export serialization and the import pipeline.

Export always writes UTF-8 with BOM, comma delimited, LF newlines, after
reducing to one record per hour. Import accepts whatever decode_bytes and
tokenize_text can make sense of.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .decoding import decode_bytes
from .errors import ImportFailed, NoDataFound
from .merge import reduce_for_export
from .models import GrowthRecord
from .rows import tokenize_text
from .rules import CHILD_NAME_LABEL, CSV_HEADER, EXPORT_FILE_SUFFIX, NORMALIZED_DELIMITER, TARGET_ENCODING
from .validate import validate_rows

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    child_name: Optional[str]
    records: List[GrowthRecord]
    encoding: Dict[str, Any] = field(default_factory=dict)


def format_timestamp(value: datetime) -> str:
    if value.second or value.microsecond:
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return value.strftime("%Y-%m-%d %H:%M")


def format_height(height: float) -> str:
    """One decimal, unless that would round a valid height down to zero."""
    text = f"{height:.1f}"
    if float(text) <= 0:
        text = f"{height:g}"
    return text


def serialize_records(records: Iterable[GrowthRecord], child_name: Optional[str] = None) -> str:
    outp = io.StringIO(newline="")
    if child_name:
        outp.write(f"{CHILD_NAME_LABEL}：{child_name}\n")

    writer = csv.writer(outp, delimiter=NORMALIZED_DELIMITER, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in reduce_for_export(records):
        writer.writerow(
            [
                format_timestamp(record.timestamp),
                format_height(record.height),
                f"{record.weight:.2f}" if record.weight is not None else "",
            ]
        )
    return outp.getvalue()


def encode_csv(records: Iterable[GrowthRecord], child_name: Optional[str] = None) -> bytes:
    """Serialized records as UTF-8 with BOM, ready for a file or download."""
    return serialize_records(records, child_name).encode(TARGET_ENCODING)


def export_file_name(child_name: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{child_name}_{EXPORT_FILE_SUFFIX}_{now:%Y%m%d_%H%M}.csv"


def import_csv_bytes(raw: bytes, now: Optional[datetime] = None) -> ImportResult:
    """
    Decode, tokenize and validate a whole file.

    Raises ImportFailed with every error in the file, or NoDataFound when the
    file is well formed but has no data rows. Nothing partial is returned.
    """
    if not raw:
        raise ImportFailed.single("format", "empty file")

    text, encoding = decode_bytes(raw)
    tokenized = tokenize_text(text)
    records, report = validate_rows(tokenized.rows, now=now)

    if report.total_errors:
        logger.warning("Rejected import batch: %s error(s) in %s row(s)", report.total_errors, len(tokenized.rows))
        raise ImportFailed(report)
    if not records:
        raise NoDataFound("no data found")

    logger.info("Parsed %s record(s) (encoding=%s)", len(records), encoding["decode_used"])
    return ImportResult(child_name=tokenized.child_name, records=records, encoding=encoding)
