"""Collaboration router: cross-booking queries and per-request operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, RateLimitedAuth, RequiredAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.collaboration import (
    CollaborationDeleted,
    CollaborationList,
    CollaborationRequest,
    CollaborationStats,
    UpdateCollaborationRequest,
)
from ..schemas.common import problem_responses
from ..services.collaboration_service import DEFAULT_SEARCH_LIMIT, CollaborationService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/collaborations",
    tags=["collaborations"],
    responses=problem_responses(400, 401, 404, 429),
)

REQUESTED_TO_TEAM_QUERY = Query(None, alias="requestedToTeam")
REQUESTED_BY_TEAM_QUERY = Query(None, alias="requestedByTeam")
STATUS_QUERY = Query(None)
TYPE_QUERY = Query(None)
LIMIT_QUERY = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=100)
TEAM_QUERY = Query(None, description="Only requests addressed to this team")


def _listing(requests, **filters) -> dict:
    return CollaborationList(
        requests=[CollaborationRequest.from_model(r) for r in requests],
        total_count=len(requests),
        filters=filters,
    ).to_wire()


@router.get("", response_model=CollaborationList)
async def search_collaborations(
    requested_to_team: Optional[str] = REQUESTED_TO_TEAM_QUERY,
    requested_by_team: Optional[str] = REQUESTED_BY_TEAM_QUERY,
    status: Optional[str] = STATUS_QUERY,
    type: Optional[str] = TYPE_QUERY,
    limit: int = LIMIT_QUERY,
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Collaboration requests across bookings, newest first."""
    try:
        requests = await CollaborationService(db).search_requests(
            requested_to_team=requested_to_team,
            requested_by_team=requested_by_team,
            status=status,
            request_type=type,
            limit=limit,
        )
        content = _listing(
            requests,
            requestedToTeam=requested_to_team,
            requestedByTeam=requested_by_team,
            status=status,
            type=type,
            limit=limit,
        )
        return JSONResponse(status_code=200, content=content)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in collaboration search",
            extra={"error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.get("/stats", response_model=CollaborationStats)
async def collaboration_stats(
    team: Optional[str] = TEAM_QUERY,
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Request counts per status."""
    try:
        stats = await CollaborationService(db).get_stats(team)
        response_data = CollaborationStats(
            team=team,
            pending=stats["PENDING"],
            in_progress=stats["IN_PROGRESS"],
            completed=stats["COMPLETED"],
            cancelled=stats["CANCELLED"],
            total=stats["total"],
        )
        return JSONResponse(status_code=200, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in collaboration stats",
            extra={"team": team, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.get("/overdue", response_model=CollaborationList)
async def overdue_collaborations(
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Open requests past their due date, earliest due first."""
    try:
        requests = await CollaborationService(db).list_overdue()
        return JSONResponse(status_code=200, content=_listing(requests))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in overdue listing",
            extra={"error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.get("/mine", response_model=CollaborationList)
async def my_collaborations(
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Requests the caller sent or was named on."""
    try:
        requests = await CollaborationService(db).list_for_user(current_user["user_id"])
        return JSONResponse(
            status_code=200,
            content=_listing(requests, userId=current_user["user_id"])
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in user collaboration listing",
            extra={"user_id": current_user["user_id"], "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.get("/{request_id}", response_model=CollaborationRequest)
async def get_collaboration(
    request_id: str,
    current_user: dict = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Get a collaboration request by ID."""
    try:
        collaboration = await CollaborationService(db).get_request(request_id)
        return JSONResponse(
            status_code=200,
            content=CollaborationRequest.from_model(collaboration).to_wire()
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in collaboration retrieval",
            extra={"request_id": request_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.put("/{request_id}", response_model=CollaborationRequest)
async def update_collaboration(
    request_id: str,
    request: UpdateCollaborationRequest,
    current_user: dict = RateLimitedAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Update status, response, notes, assignee, priority or due date."""
    try:
        collaboration = await CollaborationService(db).update_request(request_id, request, current_user)
        return JSONResponse(
            status_code=200,
            content=CollaborationRequest.from_model(collaboration).to_wire()
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in collaboration update",
            extra={"request_id": request_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.delete("/{request_id}", response_model=CollaborationDeleted)
async def delete_collaboration(
    request_id: str,
    current_user: dict = RateLimitedAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Delete a collaboration request that has not been completed."""
    try:
        collaboration = await CollaborationService(db).delete_request(request_id, current_user)
        response_data = CollaborationDeleted(request_id=request_id, title=collaboration.title)
        return JSONResponse(status_code=200, content=response_data.to_wire())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in collaboration deletion",
            extra={"request_id": request_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()
