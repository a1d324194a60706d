"""Booking model definitions, partitioned by owning team."""

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from .workflow import WorkflowStep


class Team(str, Enum):
    """Department that owns a booking."""
    AIR = "AIR"
    CINT = "CINT"


class ProjectType(str, Enum):
    """Kind of booking; decides the owning team."""
    AIR_ONLY = "AIR_ONLY"
    CINT_PACKAGE = "CINT_PACKAGE"
    CINT_INCENTIVE_GROUP = "CINT_INCENTIVE_GROUP"


PROJECT_TEAMS: Mapping[ProjectType, Team] = MappingProxyType({
    ProjectType.AIR_ONLY: Team.AIR,
    ProjectType.CINT_PACKAGE: Team.CINT,
    ProjectType.CINT_INCENTIVE_GROUP: Team.CINT,
})

# Booking number prefixes: CDC-<prefix>-YYMMDD-NNN
PROJECT_PREFIXES: Mapping[ProjectType, str] = MappingProxyType({
    ProjectType.AIR_ONLY: "AIR",
    ProjectType.CINT_PACKAGE: "PKG",
    ProjectType.CINT_INCENTIVE_GROUP: "ISG",
})


def _new_id() -> str:
    return str(uuid4())


class BookingRecord:
    """Columns shared by every booking partition."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    booking_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    project_type: Mapped[str] = mapped_column(String(32), nullable=False)
    primary_team: Mapped[str] = mapped_column(String(8), nullable=False)
    current_step: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=WorkflowStep.INQUIRY.value,
        index=True
    )

    # Opaque to the workflow engine: dates, pax, pricing, customer contact
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_by: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    @property
    def team(self) -> Team:
        return Team(self.primary_team)

    @property
    def step(self) -> WorkflowStep:
        return WorkflowStep(self.current_step)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}(id={self.id}, booking_number='{self.booking_number}', "
            f"primary_team={self.primary_team}, current_step={self.current_step})>"
        )


class AirBooking(BookingRecord, Base):
    """Bookings owned by the AIR team."""

    __tablename__ = "bookings_air"
    __table_args__ = (
        CheckConstraint("primary_team = 'AIR'", name="ck_bookings_air_team"),
    )


class CintBooking(BookingRecord, Base):
    """Bookings owned by the CINT team."""

    __tablename__ = "bookings_cint"
    __table_args__ = (
        CheckConstraint("primary_team = 'CINT'", name="ck_bookings_cint_team"),
    )


# Team tag -> partition; the only place the set of partitions is defined
PARTITIONS: Mapping[Team, type[BookingRecord]] = MappingProxyType({
    Team.AIR: AirBooking,
    Team.CINT: CintBooking,
})


class BookingSequence(Base):
    """Daily booking-number counter per project prefix and year."""

    __tablename__ = "booking_sequences"

    # "<prefix>_<YY>", e.g. "AIR_26"
    key: Mapped[str] = mapped_column(String(16), primary_key=True)
    last_date: Mapped[str] = mapped_column(String(4), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("sequence >= 0", name="ck_booking_sequence_non_negative"),
    )


def team_for_project_type(project_type: ProjectType) -> Team:
    return PROJECT_TEAMS[project_type]
