"""Unit tests for booking workflow transitions."""

import pytest
from sqlalchemy import update

from cdc_workflow.core.exceptions import InvalidChoiceError, NotFoundError, ValidationError
from cdc_workflow.models.booking import AirBooking
from cdc_workflow.models.workflow import WORKFLOW_TRANSITIONS, WorkflowStep
from cdc_workflow.services.booking_store import BookingStore
from cdc_workflow.services.workflow_service import (
    BookingStatusService,
    ConcurrentTransitionError,
    IllegalTransitionError,
    NoOpTransitionError,
)

S = WorkflowStep


async def _move_to(session, booking_id: str, step: WorkflowStep) -> None:
    """Put a booking at an arbitrary step, bypassing the transition table."""
    assert await BookingStore(session).update_fields(booking_id, {"current_step": step})


@pytest.mark.asyncio
async def test_request_transition(test_session, air_booking, air_actor):
    service = BookingStatusService(test_session)

    result = await service.request_transition(air_booking.id, "QUOTE_REQUESTED", air_actor, "sent to airline")

    assert result.previous_step == S.INQUIRY
    assert result.new_step == S.QUOTE_REQUESTED
    assert result.changed_by == air_actor["user_id"]
    assert result.changed_by_email == air_actor["email"]
    assert result.notes == "sent to airline"
    assert result.booking.current_step == "QUOTE_REQUESTED"
    assert result.booking.updated_by == air_actor["user_id"]

    position = await service.get_allowed_transitions(air_booking.id)
    assert position.current_step == S.QUOTE_REQUESTED


@pytest.mark.asyncio
async def test_illegal_transition_lists_allowed_steps(test_session, air_booking, air_actor):
    service = BookingStatusService(test_session)
    await service.request_transition(air_booking.id, "QUOTE_REQUESTED", air_actor)

    with pytest.raises(IllegalTransitionError) as exc_info:
        await service.request_transition(air_booking.id, "CONFIRMED", air_actor)

    problem = exc_info.value.problem_details
    assert exc_info.value.status_code == 400
    assert problem["current_step"] == "QUOTE_REQUESTED"
    assert problem["requested_step"] == "CONFIRMED"
    assert problem["allowed_transitions"] == ["QUOTE_RECEIVED", "CANCELLED", "ON_HOLD"]

    position = await service.get_allowed_transitions(air_booking.id)
    assert position.current_step == S.QUOTE_REQUESTED


@pytest.mark.asyncio
async def test_transition_to_current_step_is_rejected(test_session, session_factory, air_booking, air_actor):
    service = BookingStatusService(test_session)

    with pytest.raises(NoOpTransitionError) as exc_info:
        await service.request_transition(air_booking.id, "INQUIRY", air_actor)

    assert isinstance(exc_info.value, ValidationError)
    assert exc_info.value.problem_details["current_step"] == "INQUIRY"

    async with session_factory() as fresh:
        stored = await BookingStore(fresh).get_by_id(air_booking.id)
    assert stored.current_step == "INQUIRY"
    assert stored.updated_at == air_booking.updated_at


@pytest.mark.asyncio
async def test_unknown_step_lists_valid_steps(test_session, air_booking, air_actor):
    service = BookingStatusService(test_session)

    with pytest.raises(InvalidChoiceError) as exc_info:
        await service.request_transition(air_booking.id, "BOARDED", air_actor)

    assert exc_info.value.problem_details["valid_values"] == [s.value for s in WorkflowStep]


@pytest.mark.asyncio
async def test_missing_booking(test_session, air_actor):
    service = BookingStatusService(test_session)

    with pytest.raises(NotFoundError):
        await service.request_transition("missing", "QUOTE_REQUESTED", air_actor)
    with pytest.raises(NotFoundError):
        await service.get_allowed_transitions("missing")


@pytest.mark.asyncio
async def test_missing_booking_checked_before_step_name(test_session, air_actor):
    service = BookingStatusService(test_session)

    with pytest.raises(NotFoundError):
        await service.request_transition("missing", "BOARDED", air_actor)


@pytest.mark.asyncio
@pytest.mark.parametrize("step", list(WorkflowStep))
async def test_allowed_transitions_match_table(test_session, air_booking, step):
    if step != S.INQUIRY:
        await _move_to(test_session, air_booking.id, step)
    service = BookingStatusService(test_session)

    position = await service.get_allowed_transitions(air_booking.id)

    assert position.current_step == step
    assert position.allowed == list(WORKFLOW_TRANSITIONS[step])
    assert position.is_terminal == (step in (S.COMPLETED, S.CANCELLED))


@pytest.mark.asyncio
async def test_get_allowed_transitions_does_not_mutate(test_session, air_booking):
    service = BookingStatusService(test_session)
    before = air_booking.updated_at

    first = await service.get_allowed_transitions(air_booking.id)
    second = await service.get_allowed_transitions(air_booking.id)

    assert first.current_step == second.current_step == S.INQUIRY
    assert air_booking.updated_at == before
    assert first.label == "Inquiry"
    assert first.progress == 5


@pytest.mark.asyncio
async def test_terminal_steps_accept_nothing(test_session, air_booking, air_actor):
    await _move_to(test_session, air_booking.id, S.COMPLETED)
    service = BookingStatusService(test_session)

    with pytest.raises(IllegalTransitionError) as exc_info:
        await service.request_transition(air_booking.id, "CANCELLED", air_actor)

    assert exc_info.value.problem_details["allowed_transitions"] == []


@pytest.mark.asyncio
async def test_payment_steps_observable_in_between(test_session, cint_booking, cint_actor):
    await _move_to(test_session, cint_booking.id, S.CONFIRMED)
    service = BookingStatusService(test_session)

    await service.request_transition(cint_booking.id, "DEPOSIT_INVOICED", cint_actor)
    assert (await service.get_allowed_transitions(cint_booking.id)).current_step == S.DEPOSIT_INVOICED

    await service.request_transition(cint_booking.id, "DEPOSIT_RECEIVED", cint_actor)
    position = await service.get_allowed_transitions(cint_booking.id)
    assert position.current_step == S.DEPOSIT_RECEIVED
    assert position.allowed == [S.BLOCKED, S.CANCELLED]


@pytest.mark.asyncio
async def test_stale_read_yields_conflict(test_session, air_booking, air_actor):
    """A writer holding a stale step loses to the one that committed first."""
    # Another writer moves the row without touching this session's copy
    await test_session.execute(
        update(AirBooking)
        .where(AirBooking.id == air_booking.id)
        .values(current_step=S.ON_HOLD.value)
        .execution_options(synchronize_session=False)
    )
    await test_session.commit()
    assert air_booking.current_step == "INQUIRY"

    service = BookingStatusService(test_session)
    with pytest.raises(ConcurrentTransitionError) as exc_info:
        await service.request_transition(air_booking.id, "QUOTE_REQUESTED", air_actor)

    problem = exc_info.value.problem_details
    assert exc_info.value.status_code == 409
    assert problem["conflicting_resource"]["expected_step"] == "INQUIRY"
    assert problem["conflicting_resource"]["current_step"] == "ON_HOLD"

    # The winning write is left in place
    position = await service.get_allowed_transitions(air_booking.id)
    assert position.current_step == S.ON_HOLD


@pytest.mark.asyncio
async def test_applied_transition_is_logged_with_notes(test_session, air_booking, air_actor, caplog):
    caplog.set_level("INFO", logger="cdc_workflow.services.workflow_service")

    await BookingStatusService(test_session).request_transition(
        air_booking.id, "QUOTE_REQUESTED", air_actor, "sent to airline"
    )

    [record] = [r for r in caplog.records if r.getMessage() == "Booking status changed"]
    assert record.notes == "sent to airline"
    assert record.from_step == "INQUIRY"
    assert record.to_step == "QUOTE_REQUESTED"
    assert record.user_id == air_actor["user_id"]
