"""Collaboration request Pydantic schemas."""

from typing import Optional

from pydantic import Field

from ..models.booking import Team
from ..models.collaboration import CollaborationRequest as CollaborationRequestModel
from ..models.collaboration import CollaborationStatus, CollaborationType, Priority
from .common import CamelModel, UTCDateTime


class CreateCollaborationRequest(CamelModel):
    """Body of POST /bookings/{id}/collaborate.

    Closed-set fields are plain strings; the service validates them and
    answers with the accepted values.
    """

    requested_to_team: Optional[str] = Field(None, description="AIR or CINT")
    requested_to_user_ids: Optional[list[str]] = Field(None, description="Narrow the request to these users")
    type: Optional[str] = Field(None, description="Collaboration type")
    priority: Optional[str] = Field(None, description="LOW, MEDIUM, HIGH or URGENT; MEDIUM when omitted")
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None)
    due_date: Optional[UTCDateTime] = Field(None, description="Due date (ISO 8601)")


class UpdateCollaborationRequest(CamelModel):
    """Body of PUT /collaborations/{id}; absent or null fields are left alone."""

    status: Optional[str] = None
    response: Optional[str] = None
    notes: Optional[str] = None
    assigned_to: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[UTCDateTime] = None


class Requester(CamelModel):
    team: Team
    user_id: str
    user_name: str


class Recipient(CamelModel):
    team: Team
    user_ids: Optional[list[str]] = None


class Responder(CamelModel):
    user_id: str
    user_name: Optional[str] = None
    responded_at: Optional[UTCDateTime] = None


class CollaborationRequest(CamelModel):
    """Collaboration request response schema."""

    id: str
    booking_id: str
    requested_by: Requester
    requested_to: Recipient
    type: CollaborationType
    priority: Priority
    status: CollaborationStatus
    title: str
    description: str
    due_date: Optional[UTCDateTime] = None
    response: Optional[str] = None
    notes: Optional[str] = None
    assigned_to: Optional[str] = None
    responded_by: Optional[Responder] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime

    @classmethod
    def from_model(cls, request: CollaborationRequestModel) -> "CollaborationRequest":
        """Fold the flat table columns into the nested wire shape."""
        responded_by = None
        if request.responded_by_user_id:
            responded_by = Responder(
                user_id=request.responded_by_user_id,
                user_name=request.responded_by_user_name,
                responded_at=request.responded_at,
            )

        return cls(
            id=request.id,
            booking_id=request.booking_id,
            requested_by=Requester(
                team=request.requested_by_team,
                user_id=request.requested_by_user_id,
                user_name=request.requested_by_user_name,
            ),
            requested_to=Recipient(
                team=request.requested_to_team,
                user_ids=request.requested_to_user_ids,
            ),
            type=request.type,
            priority=request.priority,
            status=request.status,
            title=request.title,
            description=request.description,
            due_date=request.due_date,
            response=request.response,
            notes=request.notes,
            assigned_to=request.assigned_to,
            responded_by=responded_by,
            created_at=request.created_at,
            updated_at=request.updated_at,
        )


class CollaborationCreated(CamelModel):
    """Echo of a newly created collaboration request."""

    request_id: str
    booking_id: str
    booking_number: str
    requested_to_team: Team
    type: CollaborationType
    title: str
    priority: Priority
    status: CollaborationStatus


class BookingCollaborations(CamelModel):
    """Collaboration requests of one booking after filtering."""

    booking_id: str
    booking_number: str
    requests: list[CollaborationRequest]
    total_count: int
    filters: dict[str, Optional[str]]


class CollaborationList(CamelModel):
    """Collaboration requests across bookings."""

    requests: list[CollaborationRequest]
    total_count: int
    filters: dict[str, Optional[str | int]] = Field(default_factory=dict)


class CollaborationDeleted(CamelModel):
    request_id: str
    title: str


class CollaborationStats(CamelModel):
    """Request counts per status."""

    team: Optional[Team] = None
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    total: int = 0
