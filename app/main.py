"""Composition root: builds the bus, repositories and service."""

from __future__ import annotations

from dataclasses import dataclass

from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.domain.bus import EventBus
from app.domain.handlers import HandlerRegistry
from app.repos.memory import ActivityRepository, AvailabilityRepository
from app.services.availability import AvailabilityService


@dataclass
class Container:
    settings: Settings
    event_bus: EventBus
    availability_repo: AvailabilityRepository
    activity_repo: ActivityRepository
    handler_registry: HandlerRegistry
    availability_service: AvailabilityService


def build_container(settings: Settings | None = None) -> Container:
    settings = settings or get_settings()
    configure_logging(settings)

    event_bus = EventBus()
    availability_repo = AvailabilityRepository()
    activity_repo = ActivityRepository()
    handler_registry = HandlerRegistry(bus=event_bus, activity_repo=activity_repo)
    availability_service = AvailabilityService(
        repo=availability_repo, bus=event_bus, settings=settings
    )
    return Container(
        settings=settings,
        event_bus=event_bus,
        availability_repo=availability_repo,
        activity_repo=activity_repo,
        handler_registry=handler_registry,
        availability_service=availability_service,
    )
