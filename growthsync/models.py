from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .rules import HEIGHT_MAX, HEIGHT_MIN, SYNC_VERSION, WEIGHT_MAX, WEIGHT_MIN

ErrorCategory = Literal["format", "date", "height", "weight"]
ERROR_CATEGORIES: tuple[str, ...] = ("format", "date", "height", "weight")


class WireModel(BaseModel):
    """Base for models that travel as camelCase JSON (sync codes, API bodies)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChildProfile(WireModel):
    id: str
    name: str = Field(min_length=1)
    birth_date: date
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GrowthRecord(WireModel):
    """
    One height/weight observation.

    Timestamps are naive local time; the hour key used for deduplication is
    read straight off them.
    """

    id: Optional[str] = None
    child_id: Optional[str] = None
    timestamp: datetime
    height: float = Field(gt=HEIGHT_MIN, le=HEIGHT_MAX)
    weight: Optional[float] = Field(default=None, ge=WEIGHT_MIN, le=WEIGHT_MAX)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _to_local_naive(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value


class RecordAge(WireModel):
    years: float
    whole_years: int
    months: int = Field(ge=0, le=11)
    before_birth: bool = False
    text: str


class AgedRecord(GrowthRecord):
    """A record as listed for one child, with the child's age when it was taken."""

    age: Optional[RecordAge] = None


class ImportErrorItem(BaseModel):
    category: ErrorCategory
    line: Optional[int] = None
    value: Optional[str] = None
    detail: str


class ImportReport(BaseModel):
    errors: Dict[str, List[ImportErrorItem]] = Field(
        default_factory=lambda: {category: [] for category in ERROR_CATEGORIES}
    )

    def add(self, item: ImportErrorItem) -> None:
        self.errors.setdefault(item.category, []).append(item)

    def extend(self, items: List[ImportErrorItem]) -> None:
        for item in items:
            self.add(item)

    @property
    def total_errors(self) -> int:
        return sum(len(items) for items in self.errors.values())

    def ordered(self) -> List[ImportErrorItem]:
        """All errors, format first, then date, height and weight."""
        return [item for category in ERROR_CATEGORIES for item in self.errors.get(category, [])]

    def summary(self) -> str:
        lines = []
        for item in self.ordered():
            where = f"line {item.line}" if item.line is not None else "file"
            lines.append(f"[{item.category}] {where}: {item.detail} ({item.value!r})")
        return "\n".join(lines)


class SyncPayload(WireModel):
    version: str = SYNC_VERSION
    timestamp: datetime
    child: ChildProfile
    records: List[GrowthRecord] = Field(default_factory=list)


class SyncResult(WireModel):
    child: ChildProfile
    child_created: bool
    added: int = 0
    skipped: int = 0


# --- API envelopes ---


class ChildCreate(WireModel):
    name: str = Field(min_length=1)
    birth_date: date


class ChildUpdate(WireModel):
    name: Optional[str] = Field(default=None, min_length=1)
    birth_date: Optional[date] = None


class RecordCreate(WireModel):
    timestamp: datetime
    height: float = Field(gt=HEIGHT_MIN, le=HEIGHT_MAX)
    weight: Optional[float] = Field(default=None, ge=WEIGHT_MIN, le=WEIGHT_MAX)


class RecordUpdate(WireModel):
    timestamp: Optional[datetime] = None
    height: Optional[float] = Field(default=None, gt=HEIGHT_MIN, le=HEIGHT_MAX)
    weight: Optional[float] = Field(default=None, ge=WEIGHT_MIN, le=WEIGHT_MAX)


class ImportResponse(WireModel):
    child_id: str
    child_name: Optional[str] = None
    added: int
    replaced: int
    encoding: Dict[str, object] = Field(default_factory=dict)


class ImportFailureResponse(BaseModel):
    message: str
    total_errors: int
    errors: Dict[str, List[ImportErrorItem]]


class SyncCode(BaseModel):
    code: str


class HealthResponse(BaseModel):
    ok: bool = True
