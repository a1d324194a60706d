"""Unit tests for booking intake and booking numbers."""

import re
from datetime import datetime

import pytest

from cdc_workflow.core.exceptions import NotFoundError
from cdc_workflow.models.booking import ProjectType, Team
from cdc_workflow.schemas.booking import CreateBookingRequest
from cdc_workflow.services.booking_service import BookingService

BOOKING_NUMBER = re.compile(r"^CDC-(AIR|PKG|ISG)-\d{6}-\d{3}$")


@pytest.mark.asyncio
@pytest.mark.parametrize("project_type,team,prefix", [
    (ProjectType.AIR_ONLY, Team.AIR, "AIR"),
    (ProjectType.CINT_PACKAGE, Team.CINT, "PKG"),
    (ProjectType.CINT_INCENTIVE_GROUP, Team.CINT, "ISG"),
])
async def test_create_booking(test_session, project_type, team, prefix):
    service = BookingService(test_session)

    booking = await service.create_booking(
        CreateBookingRequest(project_type=project_type, customer_name="Customer"),
        "agent-1",
    )

    assert booking.team == team
    assert booking.current_step == "INQUIRY"
    assert booking.created_by == "agent-1"
    assert BOOKING_NUMBER.match(booking.booking_number)
    assert booking.booking_number.startswith(f"CDC-{prefix}-")


@pytest.mark.asyncio
async def test_booking_numbers_count_up_within_a_day(test_session):
    service = BookingService(test_session)
    day = datetime(2026, 10, 19, 10, 0, 0)

    first = await service.generate_booking_number(ProjectType.AIR_ONLY, now=day)
    second = await service.generate_booking_number(ProjectType.AIR_ONLY, now=day)
    other_prefix = await service.generate_booking_number(ProjectType.CINT_PACKAGE, now=day)

    assert first == "CDC-AIR-261019-001"
    assert second == "CDC-AIR-261019-002"
    assert other_prefix == "CDC-PKG-261019-001"


@pytest.mark.asyncio
async def test_booking_numbers_restart_each_day(test_session):
    service = BookingService(test_session)

    await service.generate_booking_number(ProjectType.AIR_ONLY, now=datetime(2026, 10, 19))
    await service.generate_booking_number(ProjectType.AIR_ONLY, now=datetime(2026, 10, 19))
    next_day = await service.generate_booking_number(ProjectType.AIR_ONLY, now=datetime(2026, 10, 20))

    assert next_day == "CDC-AIR-261020-001"


@pytest.mark.asyncio
async def test_get_booking_not_found(test_session):
    service = BookingService(test_session)

    with pytest.raises(NotFoundError) as exc_info:
        await service.get_booking("missing-id")

    assert exc_info.value.status_code == 404
    assert exc_info.value.problem_details["resource_id"] == "missing-id"


@pytest.mark.asyncio
async def test_list_bookings(test_session, air_booking, cint_booking):
    service = BookingService(test_session)

    all_bookings = await service.list_bookings()
    air_only = await service.list_bookings(Team.AIR)

    assert {b.id for b in all_bookings} == {air_booking.id, cint_booking.id}
    assert [b.id for b in air_only] == [air_booking.id]
    assert await service.count_by_department() == {Team.AIR: 1, Team.CINT: 1}
