"""Domain models for the availability scheduling engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class AvailabilityStatus(StrEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    TENTATIVE = "tentative"


class RecurrencePattern(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


class RecurrenceEndType(StrEnum):
    COUNT = "count"
    DATE = "date"
    NEVER = "never"


class ConflictType(StrEnum):
    OVERLAP = "overlap"
    CONTAINED = "contained"
    ADJACENT = "adjacent"


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    GENERATION = "generation"
    INTERNAL = "internal"


class ActivityType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def weekday_index(moment: datetime) -> int:
    """Return the day of week with Sunday as 0 and Saturday as 6."""
    return (moment.weekday() + 1) % 7


class CamelModel(BaseModel):
    """Base model exposing snake_case attributes under camelCase aliases.

    The alias generator is the single mapping between the API field names
    (``userId``, ``startDate``...) and the persisted attribute names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class AvailabilityBlockDraft(CamelModel):
    """A block payload that has passed validation but has no id yet."""

    user_id: int
    title: str = "Available"
    start_date: AwareDatetime
    end_date: AwareDatetime
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_group: str | None = None
    recurrence_end_type: RecurrenceEndType | None = None
    recurrence_count: int | None = None
    recurrence_end_date: AwareDatetime | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)

    @model_validator(mode="after")
    def _end_after_start(self) -> AvailabilityBlockDraft:
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    @model_validator(mode="after")
    def _recurrence_group_matches_flag(self) -> AvailabilityBlockDraft:
        if self.is_recurring and not self.recurrence_group:
            raise ValueError("recurring blocks require a recurrence_group")
        if not self.is_recurring and self.recurrence_group is not None:
            raise ValueError("non-recurring blocks cannot carry a recurrence_group")
        return self


class AvailabilityBlock(AvailabilityBlockDraft):
    id: int
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def in_series(self) -> bool:
        return self.is_recurring and self.recurrence_group is not None

    def draft(self, **overrides: Any) -> AvailabilityBlockDraft:
        """Copy every attribute except id and timestamps into a new draft."""
        fields = self.model_dump(exclude={"id", "created_at", "updated_at"})
        fields.update(overrides)
        return AvailabilityBlockDraft.model_validate(fields)


class ActivityEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    block_id: int
    user_id: int
    timestamp: datetime = Field(default_factory=_utcnow)
    type: ActivityType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request DTOs
# ---------------------------------------------------------------------------


class CreateAvailabilityRequest(CamelModel):
    user_id: int
    title: str | None = None
    start_date: AwareDatetime
    end_date: AwareDatetime
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_end_type: RecurrenceEndType | None = None
    recurrence_count: int | None = Field(default=None, gt=0)
    recurrence_end_date: AwareDatetime | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> CreateAvailabilityRequest:
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class UpdateAvailabilityRequest(CamelModel):
    """Partial update; only fields that were explicitly set are applied."""

    title: str | None = None
    start_date: AwareDatetime | None = None
    end_date: AwareDatetime | None = None
    status: AvailabilityStatus | None = None
    is_recurring: bool | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_end_type: RecurrenceEndType | None = None
    recurrence_count: int | None = Field(default=None, gt=0)
    recurrence_end_date: AwareDatetime | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> UpdateAvailabilityRequest:
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.end_date <= self.start_date
        ):
            raise ValueError("end_date must be after start_date")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    @property
    def touches_time(self) -> bool:
        return self.start_date is not None or self.end_date is not None


class AvailabilityQueryOptions(CamelModel):
    user_id: int
    start_date: AwareDatetime | None = None
    end_date: AwareDatetime | None = None
    status: AvailabilityStatus | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class AvailabilityConflict(CamelModel):
    existing_block: AvailabilityBlock
    conflict_type: ConflictType

    @property
    def is_substantive(self) -> bool:
        return self.conflict_type != ConflictType.ADJACENT


class ConflictCheck(CamelModel):
    has_conflicts: bool
    conflicts: list[AvailabilityConflict] = Field(default_factory=list)


class OccurrenceFailure(CamelModel):
    index: int
    start_date: datetime
    error: str


class GenerationReport(CamelModel):
    recurrence_group: str
    requested: int
    attempted: int = 0
    created: int = 0
    merged: int = 0
    block_ids: list[int] = Field(default_factory=list)
    failures: list[OccurrenceFailure] = Field(default_factory=list)


class DeleteSummary(CamelModel):
    count: int


class ServiceResult(CamelModel, Generic[T]):
    """Discriminated success/failure wrapper returned by every service call."""

    success: bool
    data: T | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    report: GenerationReport | None = None

    @classmethod
    def ok(cls, data: T, report: GenerationReport | None = None) -> ServiceResult[T]:
        return cls(success=True, data=data, report=report)

    @classmethod
    def fail(cls, error: str, kind: ErrorKind = ErrorKind.INTERNAL) -> ServiceResult[T]:
        return cls(success=False, error=error, error_kind=kind)
