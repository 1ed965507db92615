"""
Row validation: tokens in, GrowthRecord candidates or categorized errors out.

Errors are collected for the whole batch; the caller decides what a non-empty
report means.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .dates import parse_date
from .errors import DateParseError
from .models import GrowthRecord, ImportErrorItem, ImportReport
from .rows import Row
from .rules import HEIGHT_MAX, HEIGHT_MIN, WEIGHT_MAX, WEIGHT_MIN

logger = logging.getLogger(__name__)


def _to_number(token: str) -> Optional[float]:
    try:
        value = float(token)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def parse_height(token: str, line: int) -> Tuple[Optional[float], Optional[ImportErrorItem]]:
    value = _to_number(token.strip())
    if value is None:
        return None, ImportErrorItem(category="height", line=line, value=token, detail="height is missing or not a number")
    if value <= HEIGHT_MIN or value > HEIGHT_MAX:
        return None, ImportErrorItem(
            category="height",
            line=line,
            value=token,
            detail=f"height must be greater than {HEIGHT_MIN:g} and at most {HEIGHT_MAX:g} cm",
        )
    return value, None


def parse_weight(token: Optional[str], line: int) -> Tuple[Optional[float], Optional[ImportErrorItem]]:
    """Empty weight is allowed and means "no weight"."""
    if token is None or not token.strip():
        return None, None
    value = _to_number(token.strip())
    if value is None:
        return None, ImportErrorItem(category="weight", line=line, value=token, detail="weight is not a number")
    if value < WEIGHT_MIN or value > WEIGHT_MAX:
        return None, ImportErrorItem(
            category="weight",
            line=line,
            value=token,
            detail=f"weight must be between {WEIGHT_MIN:g} and {WEIGHT_MAX:g} kg",
        )
    return value, None


def validate_row(row: Row, now: Optional[datetime] = None) -> Tuple[Optional[GrowthRecord], List[ImportErrorItem]]:
    """Validate one tokenized row. Every problem in the row is reported."""
    if len(row.tokens) < 2:
        return None, [
            ImportErrorItem(
                category="format",
                line=row.line,
                value=row.raw,
                detail="row needs at least a date and a height",
            )
        ]

    errors: List[ImportErrorItem] = []
    date_token, height_token = row.tokens[0], row.tokens[1]
    weight_token = row.tokens[2] if len(row.tokens) > 2 else None

    timestamp = None
    try:
        timestamp = parse_date(date_token, now=now)
    except DateParseError as exc:
        errors.append(ImportErrorItem(category="date", line=row.line, value=date_token, detail=exc.detail))

    height, error = parse_height(height_token, row.line)
    if error:
        errors.append(error)
    weight, error = parse_weight(weight_token, row.line)
    if error:
        errors.append(error)

    if errors:
        logger.debug("Line %s rejected: %s", row.line, [e.category for e in errors])
        return None, errors
    return GrowthRecord(timestamp=timestamp, height=height, weight=weight), []


def validate_rows(rows: Sequence[Row], now: Optional[datetime] = None) -> Tuple[List[GrowthRecord], ImportReport]:
    """Validate every row; returns the valid candidates and the full error report."""
    now = now or datetime.now()
    records: List[GrowthRecord] = []
    report = ImportReport()
    for row in rows:
        record, errors = validate_row(row, now=now)
        if errors:
            report.extend(errors)
        elif record is not None:
            records.append(record)
    return records, report
