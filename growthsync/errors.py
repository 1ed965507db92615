"""Exceptions raised by the growth-record codec and store."""

from __future__ import annotations

from typing import Optional

from .models import ImportErrorItem, ImportReport


class GrowthSyncError(Exception):
    """Base class for everything this package raises on purpose."""


class ImportFailed(GrowthSyncError):
    """A batch had one or more validation errors; nothing was committed."""

    def __init__(self, report: ImportReport):
        self.report = report
        super().__init__(f"import failed with {report.total_errors} error(s):\n{report.summary()}")

    @classmethod
    def single(cls, category: str, detail: str, line: Optional[int] = None, value: Optional[str] = None) -> "ImportFailed":
        report = ImportReport()
        report.add(ImportErrorItem(category=category, line=line, value=value, detail=detail))
        return cls(report)


class NoDataFound(GrowthSyncError):
    """A file parsed cleanly but held no data rows, or there is nothing to export."""


class SyncFormatError(GrowthSyncError):
    """A transfer code could not be decoded or has an unsupported version."""

    category = "format"


class FileAccessError(GrowthSyncError):
    """The injected file capability failed while picking, reading or saving."""


class NotFound(GrowthSyncError, KeyError):
    """Unknown child or record id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class DateParseError(ValueError):
    """A date token was rejected; ``kind`` is ``invalid_format`` or ``out_of_range``."""

    INVALID_FORMAT = "invalid_format"
    OUT_OF_RANGE = "out_of_range"

    def __init__(self, kind: str, token: str, detail: str):
        self.kind = kind
        self.token = token
        self.detail = detail
        super().__init__(detail)
