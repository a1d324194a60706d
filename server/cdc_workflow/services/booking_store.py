"""Department-partitioned booking storage."""

import logging
from datetime import datetime
from typing import Any, NoReturn, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InternalServerError, ValidationError
from ..models.booking import PARTITIONS, BookingRecord, Team
from ..models.workflow import WorkflowStep

logger = logging.getLogger(__name__)

# Columns callers may change through update_fields
UPDATABLE_FIELDS = frozenset({
    "current_step",
    "customer_name",
    "details",
    "updated_by",
    "updated_at",
})


class BookingStore:
    """
    CRUD over the per-team booking tables.

    Every booking lives in exactly one partition, chosen by its
    ``primary_team``. Lookups by id try the partitions in turn; listing
    across teams reads both and merges newest first.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def partition_for(team: Team | str) -> type[BookingRecord]:
        """Return the mapped class for a team tag, rejecting unknown teams."""
        try:
            return PARTITIONS[Team(team)]
        except ValueError:
            raise ValidationError(
                detail=f"Unknown team '{team}'",
                extensions={"valid_values": [t.value for t in Team]},
            )

    async def get_by_id(self, booking_id: str) -> Optional[BookingRecord]:
        """Find a booking in whichever partition holds it."""
        try:
            for model in PARTITIONS.values():
                booking = await self.db.get(model, booking_id)
                if booking is not None:
                    return booking
        except SQLAlchemyError as e:
            self._raise_internal("get_by_id", e, booking_id=booking_id)
        return None

    async def add_to_department(self, team: Team | str, data: dict[str, Any]) -> str:
        """Insert a booking into the team's partition and return its new id."""
        model = self.partition_for(team)
        booking = model(**{**data, "primary_team": Team(team).value})

        try:
            self.db.add(booking)
            await self.db.commit()
            await self.db.refresh(booking)
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._raise_internal("add_to_department", e, team=str(team))

        logger.info(
            "Booking stored",
            extra={
                "booking_id": booking.id,
                "booking_number": booking.booking_number,
                "partition": model.__tablename__,
            }
        )
        return booking.id

    async def update_fields(
        self,
        booking_id: str,
        fields: dict[str, Any],
        expected_step: Optional[WorkflowStep] = None,
    ) -> bool:
        """
        Apply a partial update in a single statement.

        Args:
            booking_id: Booking to update
            fields: Column values to set; ``updated_at`` is stamped if absent
            expected_step: When given, the row is only updated while its
                ``current_step`` still equals this value

        Returns:
            True if a row was updated, False if the booking is missing or the
            expected step no longer matches

        Raises:
            ValidationError: If a field outside UPDATABLE_FIELDS is supplied
            InternalServerError: If the store round trip fails
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(detail=f"Fields cannot be updated: {sorted(unknown)}")

        values = dict(fields)
        values.setdefault("updated_at", datetime.utcnow())
        if isinstance(values.get("current_step"), WorkflowStep):
            values["current_step"] = values["current_step"].value

        booking = await self.get_by_id(booking_id)
        if booking is None:
            return False

        model = type(booking)
        stmt = update(model).where(model.id == booking_id)
        if expected_step is not None:
            stmt = stmt.where(model.current_step == WorkflowStep(expected_step).value)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._raise_internal("update_fields", e, booking_id=booking_id)

        if result.rowcount == 0:
            return False

        # Reload so callers see the stored values, not the pre-update snapshot
        await self.db.refresh(booking)
        return True

    async def list_by_department(self, team: Team | str) -> list[BookingRecord]:
        """Bookings of one partition, newest first."""
        model = self.partition_for(team)
        stmt = select(model).order_by(model.created_at.desc())
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            self._raise_internal("list_by_department", e, team=str(team))
        return list(result.scalars())

    async def list_all(self) -> list[BookingRecord]:
        """Bookings of every partition merged newest first; reads every partition."""
        bookings: list[BookingRecord] = []
        for team in PARTITIONS:
            bookings.extend(await self.list_by_department(team))
        bookings.sort(key=lambda b: b.created_at, reverse=True)
        return bookings

    async def count_by_department(self) -> dict[Team, int]:
        counts: dict[Team, int] = {}
        try:
            for team, model in PARTITIONS.items():
                result = await self.db.execute(select(func.count()).select_from(model))
                counts[team] = result.scalar_one()
        except SQLAlchemyError as e:
            self._raise_internal("count_by_department", e)
        return counts

    @staticmethod
    def _raise_internal(operation: str, error: Exception, **context) -> NoReturn:
        logger.error(
            "Booking store operation failed",
            extra={"operation": operation, "error": str(error), **context},
            exc_info=True,
        )
        raise InternalServerError(detail=f"Booking store {operation} failed") from error
