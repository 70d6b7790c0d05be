"""Service for expanding a recurrence specification into concrete occurrences."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta

from dateutil.rrule import DAILY, WEEKLY, rrule
from pydantic import BaseModel

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.domain.models import RecurrenceEndType, RecurrencePattern, weekday_index

logger = get_logger(__name__)

# pattern -> (rrule frequency, interval, days between occurrences)
_PATTERN_RULES = {
    RecurrencePattern.DAILY: (DAILY, 1, 1),
    RecurrencePattern.WEEKLY: (WEEKLY, 1, 7),
    RecurrencePattern.BIWEEKLY: (WEEKLY, 2, 14),
}


class Occurrence(BaseModel):
    index: int
    start_date: datetime
    end_date: datetime
    day_of_week: int


def _never_default(pattern: RecurrencePattern, settings: Settings) -> int:
    return {
        RecurrencePattern.DAILY: settings.never_daily_occurrences,
        RecurrencePattern.WEEKLY: settings.never_weekly_occurrences,
        RecurrencePattern.BIWEEKLY: settings.never_biweekly_occurrences,
    }[pattern]


def plan_occurrence_count(
    pattern: RecurrencePattern,
    end_type: RecurrenceEndType | None,
    start_date: datetime,
    recurrence_count: int | None = None,
    recurrence_end_date: datetime | None = None,
    settings: Settings | None = None,
) -> int:
    """Return how many occurrences a run should attempt.

    The result is always between 1 and ``settings.max_occurrences``. For
    date-bounded runs this is an estimate; generation still stops at the
    first candidate past the end date.
    """
    settings = settings or get_settings()
    step_days = _PATTERN_RULES[pattern][2]

    planned = 1
    if end_type == RecurrenceEndType.COUNT and recurrence_count and recurrence_count > 0:
        planned = recurrence_count
    elif end_type == RecurrenceEndType.DATE and recurrence_end_date is not None:
        days_between = math.ceil((recurrence_end_date - start_date) / timedelta(days=1))
        if step_days == 1:
            planned = days_between + 1
        else:
            planned = math.ceil(days_between / step_days) + 1
    elif end_type == RecurrenceEndType.NEVER:
        planned = _never_default(pattern, settings)

    if planned > settings.max_occurrences:
        logger.warning(
            "Limiting occurrences from %d to %d", planned, settings.max_occurrences
        )
        planned = settings.max_occurrences
    return max(planned, 1)


def generate_occurrences(
    start_date: datetime,
    end_date: datetime,
    pattern: RecurrencePattern,
    end_type: RecurrenceEndType | None,
    recurrence_count: int | None = None,
    recurrence_end_date: datetime | None = None,
    settings: Settings | None = None,
) -> list[Occurrence]:
    """Expand a recurrence specification into ordered occurrences.

    Every occurrence is anchored on ``start_date`` (the rule steps from the
    original start, never from the previous occurrence) and keeps the original
    duration. No two occurrences fall on the same calendar date.
    """
    planned = plan_occurrence_count(
        pattern,
        end_type,
        start_date,
        recurrence_count=recurrence_count,
        recurrence_end_date=recurrence_end_date,
        settings=settings,
    )
    limit = recurrence_end_date if end_type == RecurrenceEndType.DATE else None
    freq, interval, _ = _PATTERN_RULES[pattern]
    duration = end_date - start_date

    seen_dates: set[date] = set()
    occurrences: list[Occurrence] = []
    # rrule drops microseconds from dtstart; carry them over onto every occurrence.
    anchor = start_date.replace(microsecond=0)
    sub_second = start_date - anchor
    rule = rrule(freq, interval=interval, dtstart=anchor, count=planned)
    for index, rule_start in enumerate(rule):
        occurrence_start = rule_start + sub_second
        day = occurrence_start.date()
        if day in seen_dates:
            logger.warning("Skipping duplicate date: %s", day.isoformat())
            continue
        seen_dates.add(day)

        if limit is not None and occurrence_start > limit:
            logger.debug(
                "Stopping at occurrence %d/%d - exceeds end date limit",
                index + 1,
                planned,
            )
            break

        occurrences.append(
            Occurrence(
                index=index,
                start_date=occurrence_start,
                end_date=occurrence_start + duration,
                day_of_week=weekday_index(occurrence_start),
            )
        )
    return occurrences
