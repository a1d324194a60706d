"""Booking router: intake, lookup, workflow status and collaboration entry points."""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, RateLimitedAuth, RequiredAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..models.booking import Team
from ..schemas.booking import (
    Booking,
    BookingList,
    CreateBookingRequest,
    DepartmentCounts,
    StatusChangeRequest,
    StatusChangeResult,
    WorkflowStatus,
)
from ..schemas.collaboration import (
    BookingCollaborations,
    CollaborationCreated,
    CollaborationRequest,
    CreateCollaborationRequest,
)
from ..schemas.common import problem_responses
from ..services.booking_service import BookingService
from ..services.collaboration_service import CollaborationService
from ..services.workflow_service import BookingStatusService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/bookings",
    tags=["bookings"],
    responses=problem_responses(400, 401, 404, 409, 429),
)

TEAM_QUERY = Query(None, description="Restrict to one partition (AIR or CINT)")
STATUS_QUERY = Query(None, description="Collaboration status filter")
TYPE_QUERY = Query(None, description="Collaboration type filter")


def _unexpected(operation: str, error: Exception, **context) -> InternalServerError:
    logger.error(
        f"Unexpected error in {operation}",
        extra={"error": str(error), **context},
        exc_info=True
    )
    return InternalServerError()


@router.post("", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    current_user: dict = RateLimitedAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Register a booking inquiry in the partition of its project type's team."""
    try:
        booking = await BookingService(db).create_booking(request, current_user["user_id"])
        return JSONResponse(
            status_code=201,
            content=Booking.model_validate(booking).to_wire()
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking creation", e, project_type=request.project_type.value)


@router.get("", response_model=BookingList)
async def list_bookings(
    team: Optional[str] = TEAM_QUERY,
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """List bookings newest first, for one team or across both partitions."""
    try:
        bookings = await BookingService(db).list_bookings(team)
        response_data = BookingList(
            items=[Booking.model_validate(b) for b in bookings],
            total_count=len(bookings),
            team=Team(team) if team else None,
        )
        return JSONResponse(status_code=200, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking listing", e, team=team)


@router.get("/counts", response_model=DepartmentCounts)
async def count_bookings(
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Number of bookings held by each partition."""
    try:
        counts = await BookingService(db).count_by_department()
        response_data = DepartmentCounts(
            air=counts.get(Team.AIR, 0),
            cint=counts.get(Team.CINT, 0),
            total=sum(counts.values()),
        )
        return JSONResponse(status_code=200, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking counts", e)


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: str,
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Get booking details by ID."""
    try:
        booking = await BookingService(db).get_booking(booking_id)
        return JSONResponse(
            status_code=200,
            content=Booking.model_validate(booking).to_wire()
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking retrieval", e, booking_id=booking_id)


@router.put("/{booking_id}/status", response_model=StatusChangeResult)
async def change_status(
    booking_id: str,
    request: StatusChangeRequest,
    current_user: dict = RateLimitedAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """
    Move a booking to another workflow step.

    Rejected with 400 when the step is unknown, already current or not
    reachable from the current step, and with 409 when another caller moved
    the booking first.
    """
    try:
        result = await BookingStatusService(db).request_transition(
            booking_id,
            request.new_status,
            current_user,
            request.notes,
        )

        response_data = StatusChangeResult(
            booking=Booking.model_validate(result.booking),
            previous_status=result.previous_step,
            new_status=result.new_step,
            changed_by=result.changed_by,
            changed_by_email=result.changed_by_email,
            changed_at=result.changed_at,
            notes=result.notes,
        )
        return JSONResponse(status_code=200, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected(
            "status change", e,
            booking_id=booking_id,
            requested_step=request.new_status,
        )


@router.get("/{booking_id}/status", response_model=WorkflowStatus)
async def get_status(
    booking_id: str,
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Current workflow step of a booking and the steps it may move to."""
    try:
        position = await BookingStatusService(db).get_allowed_transitions(booking_id)
        response_data = WorkflowStatus(
            booking_id=position.booking.id,
            booking_number=position.booking.booking_number,
            current_status=position.current_step,
            label=position.label,
            progress=position.progress,
            is_terminal=position.is_terminal,
            allowed_transitions=position.allowed,
        )
        return JSONResponse(status_code=200, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("status lookup", e, booking_id=booking_id)


@router.post("/{booking_id}/collaborate", response_model=CollaborationCreated, status_code=201)
async def create_collaboration(
    booking_id: str,
    request: CreateCollaborationRequest,
    current_user: dict = RateLimitedAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Ask the other team for help on a booking."""
    try:
        collaboration, booking = await CollaborationService(db).create_request(
            booking_id, request, current_user
        )
        response_data = CollaborationCreated(
            request_id=collaboration.id,
            booking_id=booking.id,
            booking_number=booking.booking_number,
            requested_to_team=collaboration.requested_to_team,
            type=collaboration.type,
            title=collaboration.title,
            priority=collaboration.priority,
            status=collaboration.status,
        )
        return JSONResponse(status_code=201, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("collaboration creation", e, booking_id=booking_id)


@router.get("/{booking_id}/collaborate", response_model=BookingCollaborations)
async def list_collaborations(
    booking_id: str,
    status: Optional[str] = STATUS_QUERY,
    type: Optional[str] = TYPE_QUERY,
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Collaboration requests of a booking, newest first."""
    try:
        booking, requests = await CollaborationService(db).list_requests(booking_id, status, type)
        response_data = BookingCollaborations(
            booking_id=booking.id,
            booking_number=booking.booking_number,
            requests=[CollaborationRequest.from_model(r) for r in requests],
            total_count=len(requests),
            filters={"status": status, "type": type},
        )
        return JSONResponse(status_code=200, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("collaboration listing", e, booking_id=booking_id)
