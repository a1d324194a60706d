"""Booking and workflow Pydantic schemas."""

from typing import Any, Optional

from pydantic import Field

from ..models.booking import ProjectType, Team
from ..models.workflow import WorkflowStep
from .common import CamelModel, UTCDateTime


class CreateBookingRequest(CamelModel):
    """Request schema for registering a new booking inquiry."""

    project_type: ProjectType = Field(..., description="AIR_ONLY, CINT_PACKAGE or CINT_INCENTIVE_GROUP")
    customer_name: Optional[str] = Field(None, max_length=255, description="Customer or agency name")
    details: dict[str, Any] = Field(default_factory=dict, description="Dates, pax, pricing and other payload")


class Booking(CamelModel):
    """Booking response schema."""

    id: str = Field(..., description="Booking ID")
    booking_number: str = Field(..., description="Human-facing booking reference")
    project_type: ProjectType = Field(..., description="Project type")
    primary_team: Team = Field(..., description="Owning team / partition")
    current_step: WorkflowStep = Field(..., description="Current workflow step")
    customer_name: Optional[str] = Field(None, description="Customer or agency name")
    details: dict[str, Any] = Field(default_factory=dict, description="Opaque booking payload")
    created_by: str = Field(..., description="Creator user ID")
    created_at: UTCDateTime = Field(..., description="Creation time (ISO 8601)")
    updated_by: str = Field(..., description="Last modifier user ID")
    updated_at: UTCDateTime = Field(..., description="Last modification time (ISO 8601)")


class BookingList(CamelModel):
    """Bookings ordered newest first."""

    items: list[Booking] = Field(default_factory=list)
    total_count: int = Field(..., ge=0)
    team: Optional[Team] = Field(None, description="Partition filter, if any")


class DepartmentCounts(CamelModel):
    """Number of bookings per partition."""

    air: int = Field(..., ge=0, alias="AIR")
    cint: int = Field(..., ge=0, alias="CINT")
    total: int = Field(..., ge=0)


class StatusChangeRequest(CamelModel):
    """Body of PUT /bookings/{id}/status.

    ``new_status`` stays a plain string so an unknown step is reported with
    the list of valid steps instead of a generic schema error.
    """

    new_status: str = Field(..., min_length=1, description="Target workflow step")
    notes: Optional[str] = Field(None, max_length=2000, description="Free-text reason")


class StatusChangeResult(CamelModel):
    """Outcome of an applied transition."""

    booking: Booking
    previous_status: WorkflowStep
    new_status: WorkflowStep
    changed_by: str = Field(..., description="Actor user ID")
    changed_by_email: Optional[str] = Field(None, description="Actor e-mail, if known")
    changed_at: UTCDateTime
    notes: Optional[str] = None


class WorkflowStatus(CamelModel):
    """Current step of a booking and where it can go next."""

    booking_id: str
    booking_number: str
    current_status: WorkflowStep
    label: str
    progress: int = Field(..., ge=0, le=100)
    is_terminal: bool
    allowed_transitions: list[WorkflowStep]
