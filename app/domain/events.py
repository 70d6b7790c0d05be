"""Domain events emitted by the availability service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field


class AvailabilityCreated(BaseModel):
    """Fired once per successful create, for the block returned to the caller."""

    name: ClassVar[str] = "availability.created"

    id: int
    user_id: int
    start_date: datetime
    end_date: datetime
    recurrence_group: str | None = None
    occurrences: int = 1


class AvailabilityUpdated(BaseModel):
    """Fired after a block's changes have been persisted."""

    name: ClassVar[str] = "availability.updated"

    id: int
    user_id: int
    changes: dict[str, Any] = Field(default_factory=dict)


class AvailabilityDeleted(BaseModel):
    """Fired for every delete, whether one occurrence or a whole series went."""

    name: ClassVar[str] = "availability.deleted"

    id: int
    user_id: int
    count: int = 1
