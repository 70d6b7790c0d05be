"""Service for detecting and classifying overlaps between availability blocks."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from app.domain.models import AvailabilityBlock, AvailabilityConflict, ConflictType


def classify_overlap(
    new_start: datetime,
    new_end: datetime,
    existing: AvailabilityBlock,
) -> ConflictType | None:
    """Classify how the interval ``[new_start, new_end)`` meets an existing block.

    Returns ``None`` when the intervals are disjoint. Intervals that only share
    a boundary instant are ``ADJACENT``; an interval lying inside the existing
    block is ``CONTAINED``; anything else is an ``OVERLAP``.
    """
    if new_start >= existing.end_date or existing.start_date >= new_end:
        if new_start == existing.end_date or new_end == existing.start_date:
            return ConflictType.ADJACENT
        return None
    if existing.start_date <= new_start and new_end <= existing.end_date:
        return ConflictType.CONTAINED
    return ConflictType.OVERLAP


def find_conflicts(
    new_start: datetime,
    new_end: datetime,
    existing_blocks: Iterable[AvailabilityBlock],
) -> list[AvailabilityConflict]:
    """Return every existing block that touches or overlaps the given range.

    Results are ordered by the existing block's start date.
    """
    conflicts: list[AvailabilityConflict] = []
    for block in sorted(existing_blocks, key=lambda b: (b.start_date, b.id)):
        conflict_type = classify_overlap(new_start, new_end, block)
        if conflict_type is not None:
            conflicts.append(
                AvailabilityConflict(existing_block=block, conflict_type=conflict_type)
            )
    return conflicts


def substantive(conflicts: Iterable[AvailabilityConflict]) -> list[AvailabilityConflict]:
    """Drop adjacent conflicts; only real overlaps need resolution."""
    return [c for c in conflicts if c.is_substantive]
