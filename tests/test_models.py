"""Tests for model validation and the camelCase <-> snake_case field mapping."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.domain.models import (
    AvailabilityBlock,
    AvailabilityBlockDraft,
    UpdateAvailabilityRequest,
    weekday_index,
)
from tests.factories import USER_ID, at, make_draft


def test_draft_rejects_zero_length_interval():
    with pytest.raises(ValidationError, match="end_date must be after start_date"):
        make_draft(at(6, 9), at(6, 9))


def test_recurring_draft_requires_group():
    with pytest.raises(ValidationError, match="recurrence_group"):
        make_draft(at(6, 9), at(6, 10), is_recurring=True)


def test_non_recurring_draft_cannot_carry_group():
    with pytest.raises(ValidationError, match="recurrence_group"):
        make_draft(at(6, 9), at(6, 10), recurrence_group="orphan")


def test_camel_case_round_trip():
    block = AvailabilityBlock.model_validate(
        {
            "id": 3,
            "userId": USER_ID,
            "startDate": "2025-01-06T09:00:00Z",
            "endDate": "2025-01-06T10:00:00Z",
            "isRecurring": True,
            "recurrenceGroup": "g",
            "dayOfWeek": 1,
        }
    )

    assert block.user_id == USER_ID
    dumped = block.model_dump(by_alias=True)
    assert {"userId", "startDate", "endDate", "recurrenceGroup", "dayOfWeek"} <= set(dumped)
    assert AvailabilityBlock.model_validate(dumped) == block


def test_block_draft_drops_identity():
    block = AvailabilityBlock(id=9, **make_draft(at(6, 9), at(6, 10)).model_dump())

    draft = block.draft(start_date=at(6, 8))

    assert isinstance(draft, AvailabilityBlockDraft)
    assert not isinstance(draft, AvailabilityBlock)
    assert draft.start_date == at(6, 8)


def test_update_request_only_reports_set_fields():
    request = UpdateAvailabilityRequest.model_validate({"endDate": "2025-01-06T11:00:00Z"})

    assert request.changes() == {"end_date": at(6, 11)}
    assert request.touches_time


def test_update_request_rejects_inverted_interval():
    with pytest.raises(ValidationError):
        UpdateAvailabilityRequest(start_date=at(6, 10), end_date=at(6, 9))


@pytest.mark.parametrize("day, expected", [(5, 0), (6, 1), (11, 6)])
def test_weekday_index_counts_from_sunday(day, expected):
    assert weekday_index(at(day, 9)) == expected
