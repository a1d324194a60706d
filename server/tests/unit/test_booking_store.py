"""Unit tests for the department-partitioned booking store."""

from datetime import datetime, timedelta

import pytest

from cdc_workflow.core.exceptions import ValidationError
from cdc_workflow.models.booking import AirBooking, CintBooking, Team
from cdc_workflow.models.workflow import WorkflowStep
from cdc_workflow.services.booking_store import BookingStore


def _booking_data(number: str, **overrides) -> dict:
    data = {
        "booking_number": number,
        "project_type": "AIR_ONLY",
        "current_step": WorkflowStep.INQUIRY.value,
        "customer_name": "Test Customer",
        "details": {"pax": 2},
        "created_by": "tester",
        "updated_by": "tester",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_add_to_department_routes_to_partition(test_session):
    store = BookingStore(test_session)

    air_id = await store.add_to_department(Team.AIR, _booking_data("CDC-AIR-261019-001"))
    cint_id = await store.add_to_department(
        "CINT", _booking_data("CDC-PKG-261019-001", project_type="CINT_PACKAGE")
    )

    assert isinstance(await test_session.get(AirBooking, air_id), AirBooking)
    assert await test_session.get(CintBooking, air_id) is None
    assert isinstance(await test_session.get(CintBooking, cint_id), CintBooking)


@pytest.mark.asyncio
async def test_add_to_department_sets_primary_team(test_session):
    store = BookingStore(test_session)

    # primary_team in the payload is overridden by the partition
    booking_id = await store.add_to_department(
        Team.CINT, _booking_data("CDC-PKG-261019-002", primary_team="AIR")
    )

    booking = await store.get_by_id(booking_id)
    assert booking.primary_team == "CINT"


@pytest.mark.asyncio
async def test_unknown_team_rejected(test_session):
    store = BookingStore(test_session)

    with pytest.raises(ValidationError) as exc_info:
        await store.add_to_department("SALES", _booking_data("CDC-AIR-261019-003"))

    assert exc_info.value.problem_details["valid_values"] == ["AIR", "CINT"]


@pytest.mark.asyncio
async def test_get_by_id_searches_both_partitions(test_session):
    store = BookingStore(test_session)
    cint_id = await store.add_to_department(Team.CINT, _booking_data("CDC-ISG-261019-001"))

    booking = await store.get_by_id(cint_id)
    assert booking is not None
    assert booking.team == Team.CINT
    assert await store.get_by_id("no-such-booking") is None


@pytest.mark.asyncio
async def test_update_fields(test_session):
    store = BookingStore(test_session)
    booking_id = await store.add_to_department(Team.AIR, _booking_data("CDC-AIR-261019-004"))

    updated = await store.update_fields(
        booking_id,
        {"current_step": WorkflowStep.QUOTE_REQUESTED, "updated_by": "someone"},
    )

    assert updated is True
    booking = await store.get_by_id(booking_id)
    assert booking.current_step == "QUOTE_REQUESTED"
    assert booking.updated_by == "someone"


@pytest.mark.asyncio
async def test_update_fields_guarded_by_expected_step(test_session):
    store = BookingStore(test_session)
    booking_id = await store.add_to_department(Team.AIR, _booking_data("CDC-AIR-261019-005"))

    updated = await store.update_fields(
        booking_id,
        {"current_step": WorkflowStep.CANCELLED},
        expected_step=WorkflowStep.CONFIRMED,
    )

    assert updated is False
    booking = await store.get_by_id(booking_id)
    await test_session.refresh(booking)
    assert booking.current_step == "INQUIRY"


@pytest.mark.asyncio
async def test_update_fields_missing_booking(test_session):
    store = BookingStore(test_session)
    assert await store.update_fields("missing", {"customer_name": "x"}) is False


@pytest.mark.asyncio
async def test_update_fields_rejects_unknown_columns(test_session):
    store = BookingStore(test_session)
    booking_id = await store.add_to_department(Team.AIR, _booking_data("CDC-AIR-261019-006"))

    with pytest.raises(ValidationError):
        await store.update_fields(booking_id, {"primary_team": "CINT"})


@pytest.mark.asyncio
async def test_list_by_department_newest_first(test_session):
    store = BookingStore(test_session)
    base = datetime(2026, 10, 1, 9, 0, 0)
    for i in range(3):
        await store.add_to_department(
            Team.AIR,
            _booking_data(f"CDC-AIR-261001-00{i}", created_at=base + timedelta(minutes=i)),
        )

    bookings = await store.list_by_department(Team.AIR)
    assert [b.booking_number for b in bookings] == [
        "CDC-AIR-261001-002",
        "CDC-AIR-261001-001",
        "CDC-AIR-261001-000",
    ]
    assert await store.list_by_department(Team.CINT) == []


@pytest.mark.asyncio
async def test_list_all_merges_partitions(test_session):
    store = BookingStore(test_session)
    base = datetime(2026, 10, 1, 9, 0, 0)
    await store.add_to_department(Team.AIR, _booking_data("A1", created_at=base))
    await store.add_to_department(Team.CINT, _booking_data("C1", created_at=base + timedelta(minutes=1)))
    await store.add_to_department(Team.AIR, _booking_data("A2", created_at=base + timedelta(minutes=2)))

    bookings = await store.list_all()
    assert [b.booking_number for b in bookings] == ["A2", "C1", "A1"]


@pytest.mark.asyncio
async def test_count_by_department(test_session):
    store = BookingStore(test_session)
    await store.add_to_department(Team.AIR, _booking_data("A1"))
    await store.add_to_department(Team.AIR, _booking_data("A2"))
    await store.add_to_department(Team.CINT, _booking_data("C1"))

    assert await store.count_by_department() == {Team.AIR: 2, Team.CINT: 1}
