"""Service for resolving overlaps between a new interval and existing blocks.

Same-status overlaps merge into one block spanning the union. Different-status
overlaps are overridden: the existing block is deleted, split around the new
interval, or trimmed at whichever edge the new interval covers.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Iterable

from app.core.logging import get_logger
from app.domain.models import (
    AvailabilityBlock,
    AvailabilityBlockDraft,
    AvailabilityConflict,
    AvailabilityStatus,
    weekday_index,
)
from app.repos.memory import AvailabilityRepository

logger = get_logger(__name__)


class ResolutionAction(StrEnum):
    MERGE = "merge"
    DELETE = "delete"
    SPLIT = "split"
    TRIM_START = "trim_start"
    TRIM_END = "trim_end"
    NONE = "none"


def plan_resolution(
    status: AvailabilityStatus,
    new_start: datetime,
    new_end: datetime,
    existing: AvailabilityBlock,
) -> ResolutionAction:
    """Decide what happens to ``existing`` when ``[new_start, new_end)`` lands on it."""
    if existing.status == status:
        return ResolutionAction.MERGE

    start, end = existing.start_date, existing.end_date
    if new_start <= start and new_end >= end:
        return ResolutionAction.DELETE
    if new_start > start and new_end < end:
        return ResolutionAction.SPLIT
    if new_start <= start and start < new_end < end:
        return ResolutionAction.TRIM_START
    if start < new_start < end and new_end >= end:
        return ResolutionAction.TRIM_END
    return ResolutionAction.NONE


class ConflictResolver:
    """Applies merge and override decisions against the repository."""

    def __init__(self, repo: AvailabilityRepository) -> None:
        self.repo = repo

    async def resolve_for_create(
        self,
        draft: AvailabilityBlockDraft,
        conflicts: Iterable[AvailabilityConflict],
    ) -> AvailabilityBlock | None:
        """Resolve every conflict against a block about to be created.

        Returns the merge target when at least one same-status block absorbed
        the new interval; the caller must then not create ``draft``. Returns
        ``None`` when only overrides were applied.
        """
        merge_target: AvailabilityBlock | None = None
        for conflict in conflicts:
            existing = conflict.existing_block
            action = plan_resolution(
                draft.status, draft.start_date, draft.end_date, existing
            )
            if action != ResolutionAction.MERGE:
                await self.apply_override(action, draft.start_date, draft.end_date, existing)
                continue

            if merge_target is None:
                merge_target = await self.repo.update(
                    existing.id,
                    {
                        "start_date": min(draft.start_date, existing.start_date),
                        "end_date": max(draft.end_date, existing.end_date),
                    },
                )
                logger.info("Merged new interval into block %s", existing.id)
            else:
                merge_target = await self.repo.update(
                    merge_target.id,
                    {
                        "start_date": min(merge_target.start_date, existing.start_date),
                        "end_date": max(merge_target.end_date, existing.end_date),
                    },
                )
                await self.repo.delete(existing.id)
                logger.info(
                    "Folded block %s into merged block %s", existing.id, merge_target.id
                )
        return merge_target

    async def resolve_for_update(
        self,
        status: AvailabilityStatus,
        new_start: datetime,
        new_end: datetime,
        conflicts: Iterable[AvailabilityConflict],
    ) -> tuple[datetime, datetime]:
        """Resolve every conflict against a block being moved to a new interval.

        Same-status neighbours are deleted and their extent folded into the
        returned interval, which the caller writes to the updated block.
        """
        merged_start, merged_end = new_start, new_end
        for conflict in conflicts:
            existing = conflict.existing_block
            action = plan_resolution(status, new_start, new_end, existing)
            if action == ResolutionAction.MERGE:
                merged_start = min(merged_start, existing.start_date)
                merged_end = max(merged_end, existing.end_date)
                await self.repo.delete(existing.id)
                logger.info("Merged block %s into updated interval", existing.id)
            else:
                await self.apply_override(action, new_start, new_end, existing)
        return merged_start, merged_end

    async def apply_override(
        self,
        action: ResolutionAction,
        new_start: datetime,
        new_end: datetime,
        existing: AvailabilityBlock,
    ) -> AvailabilityBlock | None:
        """Apply a non-merge action. Returns the tail block created by a split."""
        logger.debug("Applying %s to block %s", action, existing.id)
        if action == ResolutionAction.DELETE:
            await self.repo.delete(existing.id)
        elif action == ResolutionAction.SPLIT:
            await self.repo.update(existing.id, {"end_date": new_start})
            day_of_week = (
                weekday_index(new_end) if existing.day_of_week is not None else None
            )
            tail = await self.repo.create(
                existing.draft(
                    start_date=new_end,
                    end_date=existing.end_date,
                    day_of_week=day_of_week,
                )
            )
            logger.info("Split block %s, tail is block %s", existing.id, tail.id)
            return tail
        elif action == ResolutionAction.TRIM_START:
            await self.repo.update(existing.id, {"start_date": new_end})
        elif action == ResolutionAction.TRIM_END:
            await self.repo.update(existing.id, {"end_date": new_start})
        return None
