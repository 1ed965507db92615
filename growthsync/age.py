"""
Child age at the time of a record, from the child's birth date.

Decimal years divide the elapsed time by a 365.25-day year and round to one
place. Whole years and months count calendar months, and a month only counts
once its day of month has been reached.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Tuple

from .models import AgedRecord, GrowthRecord, RecordAge
from .rules import AGE_TEXT, DAYS_PER_YEAR

SECONDS_PER_YEAR = DAYS_PER_YEAR * 24 * 60 * 60


def decimal_years(timestamp: datetime, birth_date: date) -> float:
    elapsed = timestamp - datetime.combine(birth_date, time())
    return round(elapsed.total_seconds() / SECONDS_PER_YEAR, 1)


def years_and_months(start: date, end: date) -> Tuple[int, int]:
    """Completed years and months from start to end; end must not be earlier."""
    years = end.year - start.year
    months = end.month - start.month
    if end.day < start.day:
        months -= 1
    if months < 0:
        years -= 1
        months += 12
    return years, months


def age_at(timestamp: datetime, birth_date: date) -> RecordAge:
    """
    Age at ``timestamp``. Records taken before the birth date get a negative
    decimal age and count years and months back from the birth date.
    """
    day = timestamp.date()
    before_birth = day < birth_date
    if before_birth:
        whole_years, months = years_and_months(day, birth_date)
    else:
        whole_years, months = years_and_months(birth_date, day)

    text = AGE_TEXT.format(years=whole_years, months=months)
    return RecordAge(
        years=decimal_years(timestamp, birth_date),
        whole_years=whole_years,
        months=months,
        before_birth=before_birth,
        text=f"-{text}" if before_birth else text,
    )


def with_age(record: GrowthRecord, birth_date: date) -> AgedRecord:
    return AgedRecord(**record.model_dump(), age=age_at(record.timestamp, birth_date))
