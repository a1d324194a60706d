"""Collaboration service: cross-team requests attached to bookings."""

import logging
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InternalServerError, InvalidChoiceError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import BookingRecord, Team
from ..models.collaboration import (
    OPEN_STATUSES,
    CollaborationRequest,
    CollaborationStatus,
    CollaborationType,
    Priority,
)
from ..schemas.collaboration import CreateCollaborationRequest, UpdateCollaborationRequest
from .booking_service import BookingService

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20


def _choice(enum_cls, field: str, value: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidChoiceError(
            field=field,
            value=value,
            choices=[member.value for member in enum_cls],
        )


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Stored timestamps are naive UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _required_text(field: str, value: Optional[str]) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(
            detail=f"{field} is required",
            errors={field: "must not be empty"},
        )
    return text


class CollaborationService:
    """Service for collaboration request operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.booking_service = BookingService(db)

    async def create_request(
        self,
        booking_id: str,
        request: CreateCollaborationRequest,
        actor: dict,
    ) -> tuple[CollaborationRequest, BookingRecord]:
        """
        Open a request from the booking's team to the other team.

        Args:
            booking_id: Booking the request is about
            request: Request body
            actor: Authenticated caller (``user_id``, ``name``)

        Returns:
            The stored request and the booking it belongs to

        Raises:
            NotFoundError: If the booking does not exist
            ValidationError: If a field is missing, empty or out of range, or
                the request targets the booking's own team
        """
        booking = await self.booking_service.get_booking(booking_id)

        if not request.requested_to_team:
            raise ValidationError(
                detail="requestedToTeam is required",
                errors={"requested_to_team": "must be AIR or CINT"},
            )
        to_team = _choice(Team, "requested_to_team", request.requested_to_team)

        if not request.type:
            raise InvalidChoiceError(
                field="type",
                value=None,
                choices=[t.value for t in CollaborationType],
                detail="type is required",
            )
        request_type = _choice(CollaborationType, "type", request.type)

        priority = Priority.MEDIUM
        if request.priority is not None:
            priority = _choice(Priority, "priority", request.priority)

        title = _required_text("title", request.title)
        description = _required_text("description", request.description)

        if to_team == booking.team:
            raise ValidationError(
                detail=f"Cannot request collaboration from the booking's own team ({to_team.value})",
                extensions={"primary_team": booking.team.value},
            )

        collaboration = CollaborationRequest(
            booking_id=booking.id,
            requested_by_team=booking.team.value,
            requested_by_user_id=actor["user_id"],
            requested_by_user_name=actor.get("name") or actor["user_id"],
            requested_to_team=to_team.value,
            requested_to_user_ids=request.requested_to_user_ids or None,
            type=request_type.value,
            priority=priority.value,
            status=CollaborationStatus.PENDING.value,
            title=title,
            description=description,
            due_date=_naive_utc(request.due_date),
        )

        try:
            self.db.add(collaboration)
            await self.db.commit()
            await self.db.refresh(collaboration)
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._raise_internal("create_request", e, booking_id=booking_id)

        metrics_collector.record_collaboration_created(request_type.value, to_team.value)
        logger.info(
            "Collaboration request created",
            extra={
                "request_id": collaboration.id,
                "booking_id": booking.id,
                "requested_by_team": booking.team.value,
                "requested_to_team": to_team.value,
                "request_type": request_type.value,
                "user_id": actor["user_id"],
            }
        )

        return collaboration, booking

    async def list_requests(
        self,
        booking_id: str,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
    ) -> tuple[BookingRecord, list[CollaborationRequest]]:
        """Requests of one booking, newest first, filtered by status and type."""
        booking = await self.booking_service.get_booking(booking_id)

        stmt = (
            select(CollaborationRequest)
            .where(CollaborationRequest.booking_id == booking_id)
            .order_by(CollaborationRequest.created_at.desc())
        )
        requests = await self._fetch(stmt, "list_requests")

        if status:
            requests = [r for r in requests if r.status == status]
        if request_type:
            requests = [r for r in requests if r.type == request_type]

        return booking, requests

    async def get_request(self, request_id: str) -> CollaborationRequest:
        """Get a request by ID or raise NotFoundError."""
        try:
            collaboration = await self.db.get(CollaborationRequest, request_id)
        except SQLAlchemyError as e:
            self._raise_internal("get_request", e, request_id=request_id)

        if collaboration is None:
            raise NotFoundError(resource_type="collaboration request", resource_id=request_id)
        return collaboration

    async def update_request(
        self,
        request_id: str,
        update: UpdateCollaborationRequest,
        actor: dict,
    ) -> CollaborationRequest:
        """
        Merge the supplied fields into a request.

        Absent and null fields are ignored. Writing a ``response`` records the
        caller as the responder.

        Raises:
            NotFoundError: If the request does not exist
            ValidationError: If status or priority is not a valid value, or
                nothing is left to update
        """
        collaboration = await self.get_request(request_id)

        fields: dict[str, Any] = {
            key: value
            for key, value in update.model_dump(exclude_unset=True).items()
            if value is not None
        }
        if "status" in fields:
            fields["status"] = _choice(CollaborationStatus, "status", fields["status"]).value
        if "priority" in fields:
            fields["priority"] = _choice(Priority, "priority", fields["priority"]).value
        if not fields:
            raise ValidationError(detail="Nothing to update")

        if "due_date" in fields:
            fields["due_date"] = _naive_utc(fields["due_date"])

        now = datetime.utcnow()
        if "response" in fields:
            fields["responded_by_user_id"] = actor["user_id"]
            fields["responded_by_user_name"] = actor.get("name") or actor["user_id"]
            fields["responded_at"] = now
        fields["updated_at"] = now

        previous_status = collaboration.status
        for key, value in fields.items():
            setattr(collaboration, key, value)

        try:
            await self.db.commit()
            await self.db.refresh(collaboration)
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._raise_internal("update_request", e, request_id=request_id)

        logger.info(
            "Collaboration request updated",
            extra={
                "request_id": request_id,
                "fields": sorted(k for k in fields if k != "updated_at"),
                "previous_status": previous_status,
                "status": collaboration.status,
                "user_id": actor["user_id"],
            }
        )
        return collaboration

    async def delete_request(self, request_id: str, actor: dict) -> CollaborationRequest:
        """
        Permanently remove a request that is not completed.

        Returns:
            The removed request (detached)

        Raises:
            NotFoundError: If the request does not exist
            ValidationError: If the request is COMPLETED
        """
        collaboration = await self.get_request(request_id)

        if collaboration.status == CollaborationStatus.COMPLETED.value:
            raise ValidationError(
                detail="Completed collaboration requests cannot be deleted",
                extensions={"status": collaboration.status},
            )

        try:
            await self.db.delete(collaboration)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._raise_internal("delete_request", e, request_id=request_id)

        metrics_collector.record_collaboration_deleted()
        logger.info(
            "Collaboration request deleted",
            extra={"request_id": request_id, "user_id": actor["user_id"]}
        )
        return collaboration

    async def search_requests(
        self,
        requested_to_team: Optional[str] = None,
        requested_by_team: Optional[str] = None,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[CollaborationRequest]:
        """Requests across bookings, newest first; unknown team values are ignored."""
        valid_teams = {t.value for t in Team}
        stmt = select(CollaborationRequest)

        if requested_to_team in valid_teams:
            stmt = stmt.where(CollaborationRequest.requested_to_team == requested_to_team)
        if requested_by_team in valid_teams:
            stmt = stmt.where(CollaborationRequest.requested_by_team == requested_by_team)
        if status:
            stmt = stmt.where(CollaborationRequest.status == status)
        if request_type:
            stmt = stmt.where(CollaborationRequest.type == request_type)

        stmt = stmt.order_by(CollaborationRequest.created_at.desc()).limit(limit)
        return await self._fetch(stmt, "search_requests")

    async def get_stats(self, team: Optional[str] = None) -> dict[str, int]:
        """Request counts per status plus total, optionally for one addressed team."""
        stmt = select(CollaborationRequest.status, func.count()).group_by(CollaborationRequest.status)
        if team is not None:
            team = _choice(Team, "team", team).value
            stmt = stmt.where(CollaborationRequest.requested_to_team == team)

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            self._raise_internal("get_stats", e, team=team)

        stats = {status.value: 0 for status in CollaborationStatus}
        for status, count in result.all():
            stats[status] = count
        stats["total"] = sum(stats.values())
        return stats

    async def list_overdue(self, now: Optional[datetime] = None) -> list[CollaborationRequest]:
        """Open requests past their due date, earliest due first."""
        now = _naive_utc(now) or datetime.utcnow()
        stmt = (
            select(CollaborationRequest)
            .where(
                CollaborationRequest.status.in_(OPEN_STATUSES),
                CollaborationRequest.due_date.is_not(None),
                CollaborationRequest.due_date < now,
            )
            .order_by(CollaborationRequest.due_date.asc())
        )
        return await self._fetch(stmt, "list_overdue")

    async def list_for_user(self, user_id: str) -> list[CollaborationRequest]:
        """Requests sent by the user or addressed to them by id, newest first."""
        sent = await self._fetch(
            select(CollaborationRequest).where(CollaborationRequest.requested_by_user_id == user_id),
            "list_for_user",
        )
        # JSON containment differs per backend, so addressed requests are matched here
        addressed = await self._fetch(
            select(CollaborationRequest).where(CollaborationRequest.requested_to_user_ids.is_not(None)),
            "list_for_user",
        )

        merged = {r.id: r for r in sent}
        for r in addressed:
            if user_id in (r.requested_to_user_ids or []):
                merged.setdefault(r.id, r)

        return sorted(merged.values(), key=lambda r: r.created_at, reverse=True)

    async def _fetch(self, stmt, operation: str) -> list[CollaborationRequest]:
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            self._raise_internal(operation, e)
        return list(result.scalars())

    @staticmethod
    def _raise_internal(operation: str, error: Exception, **context) -> NoReturn:
        logger.error(
            "Collaboration store operation failed",
            extra={"operation": operation, "error": str(error), **context},
            exc_info=True,
        )
        raise InternalServerError(detail=f"Collaboration {operation} failed") from error
