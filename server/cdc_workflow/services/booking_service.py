"""Booking intake and lookup."""

import logging
import time
from datetime import datetime
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError
from ..models.booking import PROJECT_PREFIXES, BookingRecord, BookingSequence, ProjectType, Team, team_for_project_type
from ..models.workflow import WorkflowStep
from ..schemas.booking import CreateBookingRequest
from .booking_store import BookingStore

logger = logging.getLogger(__name__)


class BookingService:
    """Service for registering and reading bookings."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = BookingStore(db)

    async def generate_booking_number(self, project_type: ProjectType, now: Optional[datetime] = None) -> str:
        """
        Next booking number, ``CDC-<prefix>-YYMMDD-NNN``.

        The counter is kept per prefix and year and restarts at 1 whenever
        the day changes. The increment is a single ``UPDATE ... RETURNING``
        so concurrent intakes never read the same value; the row lock it
        takes is held until the booking commits.
        """
        now = now or datetime.utcnow()
        prefix = PROJECT_PREFIXES[project_type]
        year = now.strftime("%y")
        month_day = now.strftime("%m%d")
        date_prefix = f"CDC-{prefix}-{year}{month_day}"
        key = f"{prefix}_{year}"

        try:
            await self.db.execute(self._ensure_sequence_row(key, month_day, now))
            stmt = (
                update(BookingSequence)
                .where(BookingSequence.key == key)
                .values(
                    # Right-hand sides see the pre-update row
                    sequence=case(
                        (BookingSequence.last_date == month_day, BookingSequence.sequence + 1),
                        else_=1,
                    ),
                    last_date=month_day,
                    updated_at=now,
                )
                .returning(BookingSequence.sequence)
                .execution_options(synchronize_session=False)
            )
            sequence = (await self.db.execute(stmt)).scalar_one()
            return f"{date_prefix}-{sequence:03d}"

        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(
                "Booking number sequence unavailable - using timestamp suffix",
                extra={"project_type": project_type.value, "error": str(e)}
            )
            return f"{date_prefix}-{str(int(time.time() * 1000))[-3:]}"

    def _ensure_sequence_row(self, key: str, month_day: str, now: datetime):
        """INSERT of a zeroed counter that is a no-op when the row already exists."""
        dialect = self.db.get_bind().dialect.name
        insert_fn = postgresql_insert if dialect == "postgresql" else sqlite_insert
        return (
            insert_fn(BookingSequence)
            .values(key=key, last_date=month_day, sequence=0, updated_at=now)
            .on_conflict_do_nothing(index_elements=[BookingSequence.key])
        )

    async def create_booking(self, request: CreateBookingRequest, created_by: str) -> BookingRecord:
        """
        Register a new booking at the INQUIRY step in its team's partition.

        Args:
            request: Booking creation request
            created_by: Actor user ID

        Returns:
            The stored booking
        """
        team = team_for_project_type(request.project_type)
        booking_number = await self.generate_booking_number(request.project_type)

        booking_id = await self.store.add_to_department(
            team,
            {
                "booking_number": booking_number,
                "project_type": request.project_type.value,
                "current_step": WorkflowStep.INQUIRY.value,
                "customer_name": request.customer_name,
                "details": request.details,
                "created_by": created_by,
                "updated_by": created_by,
            },
        )

        logger.info(
            "Booking created",
            extra={
                "booking_id": booking_id,
                "booking_number": booking_number,
                "primary_team": team.value,
                "created_by": created_by,
            }
        )

        return await self.get_booking(booking_id)

    async def get_booking(self, booking_id: str) -> BookingRecord:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.store.get_by_id(booking_id)
        if booking is None:
            logger.warning("Booking not found", extra={"booking_id": booking_id})
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking

    async def list_bookings(self, team: Optional[Team | str] = None) -> list[BookingRecord]:
        """Bookings of one team, or of all teams merged, newest first."""
        if team is not None:
            return await self.store.list_by_department(team)
        return await self.store.list_all()

    async def count_by_department(self) -> dict[Team, int]:
        return await self.store.count_by_department()
