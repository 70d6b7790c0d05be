"""In-memory repositories for availability blocks and their activity timeline."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Any

from app.core.logging import get_logger
from app.domain.models import (
    ActivityEntry,
    AvailabilityBlock,
    AvailabilityBlockDraft,
    AvailabilityConflict,
    AvailabilityQueryOptions,
)
from app.services.conflicts import find_conflicts

logger = get_logger(__name__)


class AvailabilityRepository:
    """Dict-backed store for AvailabilityBlock instances, keyed by id.

    Methods are coroutines so the service awaits persistence exactly as it
    would against a database-backed implementation.
    """

    def __init__(self) -> None:
        self._store: dict[int, AvailabilityBlock] = {}
        self._ids = itertools.count(1)

    async def find_all(self, options: AvailabilityQueryOptions) -> list[AvailabilityBlock]:
        blocks = [b for b in self._store.values() if b.user_id == options.user_id]
        if options.start_date is not None:
            blocks = [b for b in blocks if b.end_date > options.start_date]
        if options.end_date is not None:
            blocks = [b for b in blocks if b.start_date < options.end_date]
        if options.status is not None:
            blocks = [b for b in blocks if b.status == options.status]
        return sorted(blocks, key=lambda b: (b.start_date, b.id))

    async def find_by_id(self, block_id: int) -> AvailabilityBlock | None:
        return self._store.get(block_id)

    async def find_by_group(self, recurrence_group: str, user_id: int) -> list[AvailabilityBlock]:
        return sorted(
            (
                b
                for b in self._store.values()
                if b.recurrence_group == recurrence_group and b.user_id == user_id
            ),
            key=lambda b: (b.start_date, b.id),
        )

    async def find_conflicts(
        self,
        user_id: int,
        start_date: datetime,
        end_date: datetime,
        exclude_block_id: int | None = None,
    ) -> list[AvailabilityConflict]:
        """Return classified conflicts, including blocks that merely touch the range."""
        candidates = [
            b
            for b in self._store.values()
            if b.user_id == user_id
            and b.id != exclude_block_id
            and b.start_date <= end_date
            and start_date <= b.end_date
        ]
        return find_conflicts(start_date, end_date, candidates)

    async def create(self, draft: AvailabilityBlockDraft) -> AvailabilityBlock:
        block = AvailabilityBlock(id=next(self._ids), **draft.model_dump())
        self._store[block.id] = block
        return block

    async def update(self, block_id: int, changes: dict[str, Any]) -> AvailabilityBlock | None:
        """Apply ``changes`` and re-validate; returns ``None`` for an unknown id."""
        current = self._store.get(block_id)
        if current is None:
            return None
        fields = current.model_dump()
        fields.update(changes)
        fields["updated_at"] = datetime.now(timezone.utc)
        updated = AvailabilityBlock.model_validate(fields)
        self._store[block_id] = updated
        return updated

    async def delete(self, block_id: int) -> bool:
        return self._store.pop(block_id, None) is not None

    async def delete_series(self, block_id: int) -> int:
        """Delete every block sharing the block's recurrence group and owner.

        Returns the number of rows removed; 0 when the block is missing or not
        part of a series.
        """
        block = self._store.get(block_id)
        if block is None or not block.in_series:
            logger.warning(
                "Block %s is not recurring or has no recurrence group, cannot delete series",
                block_id,
            )
            return 0
        to_remove = [
            b.id
            for b in self._store.values()
            if b.recurrence_group == block.recurrence_group and b.user_id == block.user_id
        ]
        for bid in to_remove:
            del self._store[bid]
        return len(to_remove)


class ActivityRepository:
    """List-backed store for ActivityEntry instances."""

    def __init__(self) -> None:
        self._entries: list[ActivityEntry] = []

    def add(self, entry: ActivityEntry) -> None:
        self._entries.append(entry)

    def list_for_block(self, block_id: int) -> list[ActivityEntry]:
        return sorted(
            [e for e in self._entries if e.block_id == block_id],
            key=lambda e: e.timestamp,
        )

    def list_for_user(self, user_id: int) -> list[ActivityEntry]:
        return [e for e in self._entries if e.user_id == user_id]
