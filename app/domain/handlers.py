"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

from app.core.logging import get_logger
from app.domain.bus import EventBus
from app.domain.events import (
    AvailabilityCreated,
    AvailabilityDeleted,
    AvailabilityUpdated,
)
from app.domain.models import ActivityEntry, ActivityType
from app.repos.memory import ActivityRepository

logger = get_logger(__name__)


class HandlerRegistry:
    """Wires availability-event handlers to the bus and records an activity timeline."""

    def __init__(self, bus: EventBus, activity_repo: ActivityRepository) -> None:
        self.bus = bus
        self.activity_repo = activity_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(AvailabilityCreated, self.on_availability_created)
        self.bus.subscribe(AvailabilityUpdated, self.on_availability_updated)
        self.bus.subscribe(AvailabilityDeleted, self.on_availability_deleted)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_availability_created(self, event: AvailabilityCreated) -> None:
        logger.info(
            "%s: block %s for user %s (%d occurrence(s))",
            event.name,
            event.id,
            event.user_id,
            event.occurrences,
        )
        self.activity_repo.add(
            ActivityEntry(
                block_id=event.id,
                user_id=event.user_id,
                type=ActivityType.CREATED,
                payload={
                    "start_date": event.start_date.isoformat(),
                    "end_date": event.end_date.isoformat(),
                    "recurrence_group": event.recurrence_group,
                    "occurrences": event.occurrences,
                },
            )
        )

    def on_availability_updated(self, event: AvailabilityUpdated) -> None:
        logger.info("%s: block %s fields %s", event.name, event.id, sorted(event.changes))
        self.activity_repo.add(
            ActivityEntry(
                block_id=event.id,
                user_id=event.user_id,
                type=ActivityType.UPDATED,
                payload={"fields": sorted(event.changes)},
            )
        )

    def on_availability_deleted(self, event: AvailabilityDeleted) -> None:
        logger.info("%s: block %s (%d row(s))", event.name, event.id, event.count)
        self.activity_repo.add(
            ActivityEntry(
                block_id=event.id,
                user_id=event.user_id,
                type=ActivityType.DELETED,
                payload={"count": event.count},
            )
        )
