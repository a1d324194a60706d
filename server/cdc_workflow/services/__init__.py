"""Service layer package."""

from .booking_service import BookingService
from .booking_store import BookingStore
from .collaboration_service import CollaborationService
from .workflow_service import BookingStatusService

__all__ = [
    "BookingService",
    "BookingStatusService",
    "BookingStore",
    "CollaborationService",
]
