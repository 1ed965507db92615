"""
Tolerant date/time parsing for imported rows.

Tokens are cleaned up, then tried against an ordered list of formats. The
first format that matches wins; ambiguous tokens are resolved by that order
and nothing else.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .errors import DateParseError
from .rules import EARLIEST_RECORD

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateFormat:
    label: str
    pattern: re.Pattern
    strptime: str
    has_time: bool


def _fmt(label: str, pattern: str, strptime: str) -> DateFormat:
    return DateFormat(label, re.compile(pattern), strptime, "%H" in strptime)


_D2 = r"\d{4}SEP\d{2}SEP\d{2}"
_D1 = r"\d{4}SEP\d{1,2}SEP\d{1,2}"
_HMS = r" \d{1,2}:\d{2}:\d{2}"
_HM = r" \d{1,2}:\d{2}"


def _family(sep: str, date_re: str, label: str) -> list[DateFormat]:
    date_re = date_re.replace("SEP", re.escape(sep))
    base = f"%Y{sep}%m{sep}%d"
    return [
        _fmt(f"{label} HH:mm:ss", date_re + _HMS, base + " %H:%M:%S"),
        _fmt(f"{label} HH:mm", date_re + _HM, base + " %H:%M"),
        _fmt(label, date_re, base),
    ]


DATE_FORMATS: tuple[DateFormat, ...] = tuple(
    _family("-", _D2, "YYYY-MM-DD")
    + _family("/", _D2, "YYYY/MM/DD")
    + _family("-", _D1, "YYYY-M-D")
    + _family("/", _D1, "YYYY/M/D")
    + [_fmt("YYYYMMDD", r"\d{8}", "%Y%m%d")]
)

_ISO_T = re.compile(r"^(\d{4}\D\d{1,2}\D\d{1,2})T")
_FRACTION = re.compile(r"(\d{1,2}:\d{2}:\d{2})[.,]\d+\s*(?:Z|[+-]\d{2}:?\d{2})?$|(\d{1,2}:\d{2}(?::\d{2})?)Z$")
_PAD = re.compile(r"^(\d{4})([-/])(\d{1,2})\2(\d{1,2})(?=\D|$)")


def _pad(match: re.Match) -> str:
    year, sep, month, day = match.groups()
    return f"{year}{sep}{int(month):02d}{sep}{int(day):02d}"


def clean_date_token(token: str) -> str:
    """Normalize separators and padding before format matching."""
    text = " ".join(token.strip().strip("\"'").split())
    text = _ISO_T.sub(r"\1 ", text)
    text = _FRACTION.sub(lambda m: m.group(1) or m.group(2), text)
    text = text.replace(".", "-")
    return _PAD.sub(_pad, text)


def parse_date(token: str, now: Optional[datetime] = None) -> datetime:
    """
    Parse a raw date token into a naive local datetime.

    Raises DateParseError with kind ``invalid_format`` when no format matches
    (or the match is not a real calendar date) and ``out_of_range`` when the
    date is before 2000-01-01 or more than a day in the future.
    """
    cleaned = clean_date_token(token or "")
    parsed = None
    for candidate in DATE_FORMATS:
        if not candidate.pattern.fullmatch(cleaned):
            continue
        try:
            parsed = datetime.strptime(cleaned, candidate.strptime)
        except ValueError:
            continue
        logger.debug("Date %r matched %s", token, candidate.label)
        break

    if parsed is None:
        raise DateParseError(
            DateParseError.INVALID_FORMAT,
            token,
            "invalid date format; use YYYY-MM-DD, YYYY/MM/DD or YYYYMMDD, optionally followed by HH:mm[:ss]",
        )

    now = now or datetime.now()
    latest = now + timedelta(days=1)
    if parsed < EARLIEST_RECORD or parsed > latest:
        raise DateParseError(
            DateParseError.OUT_OF_RANGE,
            token,
            f"date out of range; must be between {EARLIEST_RECORD:%Y-%m-%d} and {latest:%Y-%m-%d %H:%M}",
        )
    return parsed


def format_iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds")


def normalize_date(token: str, now: Optional[datetime] = None) -> str:
    """Parse a token and return it as ``YYYY-MM-DDTHH:MM:SS.mmm``."""
    return format_iso(parse_date(token, now=now))
