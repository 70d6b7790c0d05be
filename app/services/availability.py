"""AvailabilityService - business logic for availability management.

Every public coroutine returns a :class:`ServiceResult`; exceptions never
cross this boundary. Writes for one user are serialized so a conflict check
and the writes that follow it cannot interleave with another request for the
same user.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.domain.bus import EventBus
from app.domain.events import (
    AvailabilityCreated,
    AvailabilityDeleted,
    AvailabilityUpdated,
)
from app.domain.models import (
    AvailabilityBlock,
    AvailabilityBlockDraft,
    AvailabilityQueryOptions,
    ConflictCheck,
    CreateAvailabilityRequest,
    DeleteSummary,
    ErrorKind,
    GenerationReport,
    OccurrenceFailure,
    RecurrenceEndType,
    RecurrencePattern,
    ServiceResult,
    UpdateAvailabilityRequest,
    weekday_index,
)
from app.repos.memory import AvailabilityRepository
from app.services.conflicts import substantive
from app.services.recurrence import generate_occurrences, plan_occurrence_count
from app.services.resolver import ConflictResolver

logger = get_logger(__name__)

NOT_FOUND = "Availability block not found"


def _validation_error(exc: ValidationError | ValueError) -> ServiceResult:
    return ServiceResult.fail(f"Validation error: {exc}", ErrorKind.VALIDATION)


class AvailabilityService:
    def __init__(
        self,
        repo: AvailabilityRepository,
        bus: EventBus,
        settings: Settings | None = None,
    ) -> None:
        self.repo = repo
        self.bus = bus
        self.settings = settings or get_settings()
        self.resolver = ConflictResolver(repo)
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_holders: Counter[int] = Counter()

    @asynccontextmanager
    async def _user_lock(self, user_id: int):
        """Hold the per-user write lock; the entry is dropped once nobody waits on it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_holders[user_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if not self._lock_holders[user_id]:
                del self._lock_holders[user_id]
                del self._locks[user_id]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_availability_blocks(
        self, options: AvailabilityQueryOptions | dict[str, Any]
    ) -> ServiceResult[list[AvailabilityBlock]]:
        """Get all availability blocks for a user, optionally within a range."""
        try:
            if isinstance(options, dict):
                options = AvailabilityQueryOptions.model_validate(options)
            blocks = await self.repo.find_all(options)
            return ServiceResult.ok(blocks)
        except ValidationError as exc:
            return _validation_error(exc)
        except Exception as exc:
            logger.exception("Error in get_availability_blocks")
            return ServiceResult.fail(str(exc) or "Failed to retrieve availability blocks")

    async def get_availability_block_by_id(
        self, block_id: int
    ) -> ServiceResult[AvailabilityBlock]:
        try:
            block = await self.repo.find_by_id(block_id)
            if block is None:
                return ServiceResult.fail(NOT_FOUND, ErrorKind.NOT_FOUND)
            return ServiceResult.ok(block)
        except Exception as exc:
            logger.exception("Error in get_availability_block_by_id for ID %s", block_id)
            return ServiceResult.fail(str(exc) or "Failed to retrieve availability block")

    async def get_series(self, block_id: int) -> ServiceResult[list[AvailabilityBlock]]:
        """Return every block in the same recurrence group as ``block_id``."""
        try:
            block = await self.repo.find_by_id(block_id)
            if block is None:
                return ServiceResult.fail(NOT_FOUND, ErrorKind.NOT_FOUND)
            if not block.in_series:
                return ServiceResult.ok([block])
            series = await self.repo.find_by_group(block.recurrence_group, block.user_id)
            return ServiceResult.ok(series)
        except Exception as exc:
            logger.exception("Error in get_series for ID %s", block_id)
            return ServiceResult.fail(str(exc) or "Failed to retrieve recurrence series")

    async def check_for_conflicts(
        self,
        user_id: int,
        start_date: datetime,
        end_date: datetime,
        exclude_block_id: int | None = None,
    ) -> ServiceResult[ConflictCheck]:
        """Read-only check: report what a create or update over this range would hit."""
        try:
            if start_date.tzinfo is None or end_date.tzinfo is None:
                return _validation_error(
                    ValueError("start_date and end_date must be timezone-aware")
                )
            if end_date <= start_date:
                return _validation_error(ValueError("end_date must be after start_date"))
            conflicts = await self.repo.find_conflicts(
                user_id, start_date, end_date, exclude_block_id
            )
            significant = substantive(conflicts)
            return ServiceResult.ok(
                ConflictCheck(
                    has_conflicts=bool(significant),
                    conflicts=conflicts if significant else [],
                )
            )
        except Exception as exc:
            logger.exception("Error in check_for_conflicts")
            return ServiceResult.fail(str(exc) or "Failed to check for conflicts")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_availability_block(
        self, request: CreateAvailabilityRequest | dict[str, Any]
    ) -> ServiceResult[AvailabilityBlock]:
        """Create a block, or a whole recurring series when ``is_recurring`` is set.

        Returns the first persisted block. When the new interval merged into
        an existing same-status block, that existing block is returned instead.
        """
        try:
            if isinstance(request, dict):
                request = CreateAvailabilityRequest.model_validate(request)
            async with self._user_lock(request.user_id):
                if request.is_recurring:
                    return await self._create_series(request)
                return await self._create_single(request)
        except ValidationError as exc:
            return _validation_error(exc)
        except Exception as exc:
            logger.exception("Error in create_availability_block")
            return ServiceResult.fail(str(exc) or "Failed to create availability block")

    async def _create_single(
        self, request: CreateAvailabilityRequest
    ) -> ServiceResult[AvailabilityBlock]:
        draft = AvailabilityBlockDraft(
            user_id=request.user_id,
            title=request.title or self.settings.default_title,
            start_date=request.start_date,
            end_date=request.end_date,
            status=request.status,
        )
        block, _ = await self._place(draft)
        self.bus.publish(
            AvailabilityCreated(
                id=block.id,
                user_id=block.user_id,
                start_date=block.start_date,
                end_date=block.end_date,
            )
        )
        return ServiceResult.ok(block)

    async def _create_series(
        self, request: CreateAvailabilityRequest
    ) -> ServiceResult[AvailabilityBlock]:
        recurrence_group = str(uuid.uuid4())
        pattern = request.recurrence_pattern or RecurrencePattern.WEEKLY
        end_type = request.recurrence_end_type or RecurrenceEndType.NEVER
        logger.info(
            "Created new recurrence group %s (%s, ends by %s)",
            recurrence_group,
            pattern,
            end_type,
        )

        occurrences = generate_occurrences(
            request.start_date,
            request.end_date,
            pattern,
            end_type,
            recurrence_count=request.recurrence_count,
            recurrence_end_date=request.recurrence_end_date,
            settings=self.settings,
        )
        report = GenerationReport(
            recurrence_group=recurrence_group,
            requested=plan_occurrence_count(
                pattern,
                end_type,
                request.start_date,
                recurrence_count=request.recurrence_count,
                recurrence_end_date=request.recurrence_end_date,
                settings=self.settings,
            ),
            attempted=len(occurrences),
        )

        for occurrence in occurrences:
            try:
                draft = AvailabilityBlockDraft(
                    user_id=request.user_id,
                    title=request.title or self.settings.default_title,
                    start_date=occurrence.start_date,
                    end_date=occurrence.end_date,
                    status=request.status,
                    is_recurring=True,
                    recurrence_pattern=pattern,
                    recurrence_group=recurrence_group,
                    recurrence_end_type=end_type,
                    recurrence_count=request.recurrence_count,
                    recurrence_end_date=request.recurrence_end_date,
                    day_of_week=occurrence.day_of_week,
                )
                block, merged = await self._place(draft)
            except Exception as exc:
                logger.warning(
                    "Error creating occurrence %d on %s: %s",
                    occurrence.index + 1,
                    occurrence.start_date.date().isoformat(),
                    exc,
                )
                report.failures.append(
                    OccurrenceFailure(
                        index=occurrence.index,
                        start_date=occurrence.start_date,
                        error=str(exc) or type(exc).__name__,
                    )
                )
                continue
            if merged:
                logger.debug(
                    "Merged occurrence %d into block %s", occurrence.index + 1, block.id
                )
                report.merged += 1
            else:
                logger.debug("Created occurrence %d as block %s", occurrence.index + 1, block.id)
                report.created += 1
            if block.id not in report.block_ids:
                report.block_ids.append(block.id)

        # A later occurrence may have merged away or deleted an earlier block.
        surviving = [await self.repo.find_by_id(block_id) for block_id in report.block_ids]
        report.block_ids = [block.id for block in surviving if block is not None]

        logger.info(
            "Successfully placed %d of %d planned occurrences (%d merged)",
            report.created + report.merged,
            report.requested,
            report.merged,
        )
        if not report.block_ids:
            logger.error("Failed to create any recurring blocks")
            return ServiceResult(
                success=False,
                error="Failed to create recurring blocks",
                error_kind=ErrorKind.GENERATION,
                report=report,
            )

        first_block = next(block for block in surviving if block is not None)
        self.bus.publish(
            AvailabilityCreated(
                id=first_block.id,
                user_id=first_block.user_id,
                start_date=first_block.start_date,
                end_date=first_block.end_date,
                recurrence_group=recurrence_group,
                occurrences=report.created + report.merged,
            )
        )
        return ServiceResult.ok(first_block, report=report)

    async def _place(
        self, draft: AvailabilityBlockDraft
    ) -> tuple[AvailabilityBlock, bool]:
        """Run one candidate block through conflict detection and resolution.

        Returns the block now covering the draft and whether it was an existing
        block the draft merged into.
        """
        conflicts = substantive(
            await self.repo.find_conflicts(draft.user_id, draft.start_date, draft.end_date)
        )
        if conflicts:
            merged = await self.resolver.resolve_for_create(draft, conflicts)
            if merged is not None:
                return merged, True
        return await self.repo.create(draft), False

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_availability_block(
        self, block_id: int, request: UpdateAvailabilityRequest | dict[str, Any]
    ) -> ServiceResult[AvailabilityBlock]:
        """Update one block. Moving it in time re-runs conflict resolution
        against every overlapping neighbour."""
        try:
            if isinstance(request, dict):
                request = UpdateAvailabilityRequest.model_validate(request)
            existing = await self.repo.find_by_id(block_id)
            if existing is None:
                return ServiceResult.fail(NOT_FOUND, ErrorKind.NOT_FOUND)

            async with self._user_lock(existing.user_id):
                existing = await self.repo.find_by_id(block_id)
                if existing is None:
                    return ServiceResult.fail(NOT_FOUND, ErrorKind.NOT_FOUND)

                changes = request.changes()
                if changes.get("is_recurring") is False:
                    changes["recurrence_group"] = None

                if request.touches_time:
                    start_date = request.start_date or existing.start_date
                    end_date = request.end_date or existing.end_date
                    if end_date <= start_date:
                        return _validation_error(
                            ValueError("end_date must be after start_date")
                        )
                    status = request.status or existing.status
                    conflicts = substantive(
                        await self.repo.find_conflicts(
                            existing.user_id, start_date, end_date, block_id
                        )
                    )
                    if conflicts:
                        start_date, end_date = await self.resolver.resolve_for_update(
                            status, start_date, end_date, conflicts
                        )
                    changes["start_date"] = start_date
                    changes["end_date"] = end_date
                    if existing.day_of_week is not None and "day_of_week" not in changes:
                        changes["day_of_week"] = weekday_index(start_date)

                updated = await self.repo.update(block_id, changes)
                if updated is None:
                    return ServiceResult.fail("Failed to update availability block")

                self.bus.publish(
                    AvailabilityUpdated(
                        id=updated.id, user_id=updated.user_id, changes=changes
                    )
                )
                return ServiceResult.ok(updated)
        except ValidationError as exc:
            return _validation_error(exc)
        except Exception as exc:
            logger.exception("Error in update_availability_block for ID %s", block_id)
            return ServiceResult.fail(str(exc) or "Failed to update availability block")

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_availability_block(
        self, block_id: int, delete_series: bool = False
    ) -> ServiceResult[DeleteSummary]:
        """Delete a block; with ``delete_series`` also every block in its group."""
        try:
            existing = await self.repo.find_by_id(block_id)
            if existing is None:
                logger.info("Block ID %s not found for deletion", block_id)
                return ServiceResult.fail(NOT_FOUND, ErrorKind.NOT_FOUND)

            async with self._user_lock(existing.user_id):
                if delete_series and existing.in_series:
                    count = await self.repo.delete_series(block_id)
                    if count == 0:
                        return ServiceResult.fail("Failed to delete recurring series")
                    logger.info(
                        "Deleted %d blocks in recurrence group %s",
                        count,
                        existing.recurrence_group,
                    )
                else:
                    if not await self.repo.delete(block_id):
                        return ServiceResult.fail("Failed to delete availability block")
                    count = 1
                    logger.info("Deleted block ID %s", block_id)

                self.bus.publish(
                    AvailabilityDeleted(id=block_id, user_id=existing.user_id, count=count)
                )
                return ServiceResult.ok(DeleteSummary(count=count))
        except Exception as exc:
            logger.exception("Error in delete_availability_block for ID %s", block_id)
            return ServiceResult.fail(str(exc) or "Failed to delete availability block")
