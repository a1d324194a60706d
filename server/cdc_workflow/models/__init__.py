"""Models module exporting all database models."""

from .booking import (
    PARTITIONS,
    AirBooking,
    BookingRecord,
    BookingSequence,
    CintBooking,
    ProjectType,
    Team,
    team_for_project_type,
)
from .collaboration import CollaborationRequest, CollaborationStatus, CollaborationType, Priority
from .workflow import WORKFLOW_TRANSITIONS, WorkflowStep

__all__ = [
    # Workflow definition
    "WorkflowStep",
    "WORKFLOW_TRANSITIONS",

    # Booking partitions
    "Team",
    "ProjectType",
    "BookingRecord",
    "AirBooking",
    "CintBooking",
    "PARTITIONS",
    "BookingSequence",
    "team_for_project_type",

    # Collaboration
    "CollaborationRequest",
    "CollaborationStatus",
    "CollaborationType",
    "Priority",
]
