"""Booking status service: validates and applies workflow step transitions."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    PROBLEM_BASE_URI,
    ConflictError,
    InvalidChoiceError,
    ProblemDetailsException,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import BookingRecord
from ..models.workflow import (
    WORKFLOW_PROGRESS,
    WORKFLOW_STEP_LABELS,
    WorkflowStep,
    allowed_transitions,
    is_terminal,
    is_transition_allowed,
    parse_step,
)
from .booking_service import BookingService
from .booking_store import BookingStore

logger = logging.getLogger(__name__)


class IllegalTransitionError(ProblemDetailsException):
    """The target step is not reachable from the booking's current step."""

    def __init__(self, current_step: WorkflowStep, requested_step: WorkflowStep):
        allowed = [step.value for step in allowed_transitions(current_step)]
        super().__init__(
            status_code=400,
            title="Illegal Transition",
            detail=f"Cannot change status from {current_step.value} to {requested_step.value}",
            type_uri=f"{PROBLEM_BASE_URI}/illegal-transition",
            extensions={
                "code": "ILLEGAL_TRANSITION",
                "current_step": current_step.value,
                "requested_step": requested_step.value,
                "allowed_transitions": allowed,
            },
        )


class NoOpTransitionError(ValidationError):
    """The booking is already at the requested step."""

    def __init__(self, current_step: WorkflowStep):
        super().__init__(
            detail=f"Booking is already in status {current_step.value}",
            extensions={"code": "ALREADY_IN_STATE", "current_step": current_step.value},
        )


class ConcurrentTransitionError(ConflictError):
    """Another writer changed the booking's step between read and update."""

    def __init__(self, booking_id: str, expected_step: WorkflowStep, actual_step: Optional[str]):
        super().__init__(
            detail=(
                f"Booking {booking_id} changed from {expected_step.value} while the transition "
                "was being applied; reload and retry"
            ),
            conflicting_resource={
                "booking_id": booking_id,
                "expected_step": expected_step.value,
                "current_step": actual_step,
            },
        )
        self.problem_details["code"] = "CONCURRENT_MODIFICATION"


@dataclass
class TransitionResult:
    booking: BookingRecord
    previous_step: WorkflowStep
    new_step: WorkflowStep
    changed_by: str
    changed_by_email: Optional[str]
    changed_at: datetime
    notes: Optional[str]


@dataclass
class WorkflowPosition:
    booking: BookingRecord
    current_step: WorkflowStep
    allowed: list[WorkflowStep]

    @property
    def label(self) -> str:
        return WORKFLOW_STEP_LABELS[self.current_step]

    @property
    def progress(self) -> int:
        return WORKFLOW_PROGRESS[self.current_step]

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.current_step)


class BookingStatusService:
    """Service for booking workflow transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = BookingStore(db)
        self.bookings = BookingService(db)

    async def get_allowed_transitions(self, booking_id: str) -> WorkflowPosition:
        """
        Current step of a booking and the steps reachable from it.

        Read-only; terminal steps yield an empty list.

        Raises:
            NotFoundError: If the booking does not exist
        """
        booking = await self.bookings.get_booking(booking_id)
        current = booking.step
        return WorkflowPosition(
            booking=booking,
            current_step=current,
            allowed=allowed_transitions(current),
        )

    async def request_transition(
        self,
        booking_id: str,
        new_step: str,
        actor: dict,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move a booking to ``new_step`` if the transition table allows it.

        The store update is conditional on the step read here still being
        current, so two racing callers cannot both apply a transition from
        the same step.

        Args:
            booking_id: Booking to move
            new_step: Target step name
            actor: Authenticated caller (``user_id``, ``email``)
            notes: Optional free-text reason

        Returns:
            TransitionResult with the reloaded booking

        Raises:
            NotFoundError: If the booking does not exist
            InvalidChoiceError: If ``new_step`` is not a workflow step
            NoOpTransitionError: If the booking is already at ``new_step``
            IllegalTransitionError: If ``new_step`` is not reachable
            ConcurrentTransitionError: If the step changed underneath us
            InternalServerError: If the store update fails
        """
        booking = await self.bookings.get_booking(booking_id)

        target = parse_step(new_step)
        if target is None:
            metrics_collector.record_transition_rejected("invalid_step")
            raise InvalidChoiceError(
                field="status",
                value=new_step,
                choices=[step.value for step in WorkflowStep],
                detail=f"'{new_step}' is not a valid booking status",
            )

        current = booking.step
        if target == current:
            metrics_collector.record_transition_rejected("no_op")
            raise NoOpTransitionError(current)

        if not is_transition_allowed(current, target):
            metrics_collector.record_transition_rejected("illegal")
            logger.warning(
                "Booking transition rejected - not allowed from current step",
                extra={
                    "booking_id": booking_id,
                    "current_step": current.value,
                    "requested_step": target.value,
                    "user_id": actor["user_id"],
                }
            )
            raise IllegalTransitionError(current, target)

        changed_at = datetime.utcnow()
        updated = await self.store.update_fields(
            booking_id,
            {
                "current_step": target,
                "updated_by": actor["user_id"],
                "updated_at": changed_at,
            },
            expected_step=current,
        )

        if not updated:
            metrics_collector.record_transition_rejected("conflict")
            latest = await self.store.get_by_id(booking_id)
            if latest is not None:
                await self.db.refresh(latest)
            raise ConcurrentTransitionError(
                booking_id,
                current,
                latest.current_step if latest is not None else None,
            )

        metrics_collector.record_transition(current.value, target.value)
        logger.info(
            "Booking status changed",
            extra={
                "booking_id": booking_id,
                "booking_number": booking.booking_number,
                "from_step": current.value,
                "to_step": target.value,
                "user_id": actor["user_id"],
                "notes": notes,
            }
        )

        return TransitionResult(
            booking=booking,
            previous_step=current,
            new_step=target,
            changed_by=actor["user_id"],
            changed_by_email=actor.get("email"),
            changed_at=changed_at,
            notes=notes,
        )
