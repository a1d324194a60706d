"""Collaboration request model: cross-team work items attached to a booking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class CollaborationType(str, Enum):
    """Category of work requested from the other team."""
    FLIGHT_QUOTE_REQUEST = "FLIGHT_QUOTE_REQUEST"
    LAND_QUOTE_REQUEST = "LAND_QUOTE_REQUEST"
    PACKAGE_CONSULTATION = "PACKAGE_CONSULTATION"
    PRICING_REVIEW = "PRICING_REVIEW"
    DOCUMENT_REVIEW = "DOCUMENT_REVIEW"
    CUSTOMER_CONSULTATION = "CUSTOMER_CONSULTATION"
    OTHER = "OTHER"


class CollaborationStatus(str, Enum):
    """Collaboration request status enumeration."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Priority(str, Enum):
    """Collaboration request priority enumeration."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


OPEN_STATUSES = (CollaborationStatus.PENDING.value, CollaborationStatus.IN_PROGRESS.value)


class CollaborationRequest(Base):
    """A request from a booking's owning team to the other team."""

    __tablename__ = "collaboration_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Weak reference: bookings live in per-team tables, so no foreign key
    booking_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    requested_by_team: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    requested_by_user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    requested_by_user_name: Mapped[str] = mapped_column(String(255), nullable=False)

    requested_to_team: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    # None means the whole team
    requested_to_user_ids: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)

    type: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[str] = mapped_column(String(8), nullable=False, default=Priority.MEDIUM.value)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=CollaborationStatus.PENDING.value,
        index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    responded_by_user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    responded_by_user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("requested_by_team <> requested_to_team", name="ck_collaboration_other_team"),
        CheckConstraint("length(title) > 0", name="ck_collaboration_title_not_empty"),
        CheckConstraint("length(description) > 0", name="ck_collaboration_description_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<CollaborationRequest(id={self.id}, booking_id={self.booking_id}, "
            f"type={self.type}, status={self.status}, "
            f"{self.requested_by_team}->{self.requested_to_team})>"
        )
