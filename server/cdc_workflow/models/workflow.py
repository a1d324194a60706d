"""Booking workflow steps, their transition table, and display metadata."""

from enum import Enum
from types import MappingProxyType
from typing import Mapping


class WorkflowStep(str, Enum):
    """Lifecycle position of a booking."""
    INQUIRY = "INQUIRY"
    QUOTE_REQUESTED = "QUOTE_REQUESTED"
    QUOTE_RECEIVED = "QUOTE_RECEIVED"
    CUSTOMER_NOTIFIED = "CUSTOMER_NOTIFIED"
    CONFIRMED = "CONFIRMED"
    DEPOSIT_INVOICED = "DEPOSIT_INVOICED"
    DEPOSIT_RECEIVED = "DEPOSIT_RECEIVED"
    BLOCKED = "BLOCKED"
    FINAL_PAYMENT_INVOICED = "FINAL_PAYMENT_INVOICED"
    FINAL_PAYMENT_RECEIVED = "FINAL_PAYMENT_RECEIVED"
    TICKETED = "TICKETED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


S = WorkflowStep

WORKFLOW_TRANSITIONS: Mapping[WorkflowStep, tuple[WorkflowStep, ...]] = MappingProxyType({
    S.INQUIRY: (S.QUOTE_REQUESTED, S.CANCELLED, S.ON_HOLD),
    S.QUOTE_REQUESTED: (S.QUOTE_RECEIVED, S.CANCELLED, S.ON_HOLD),
    S.QUOTE_RECEIVED: (S.CUSTOMER_NOTIFIED, S.CANCELLED, S.ON_HOLD),
    S.CUSTOMER_NOTIFIED: (S.CONFIRMED, S.CANCELLED, S.ON_HOLD),
    # FINAL_PAYMENT_INVOICED directly when the customer pays in full
    S.CONFIRMED: (S.DEPOSIT_INVOICED, S.FINAL_PAYMENT_INVOICED, S.CANCELLED),
    S.DEPOSIT_INVOICED: (S.DEPOSIT_RECEIVED, S.CANCELLED),
    S.DEPOSIT_RECEIVED: (S.BLOCKED, S.CANCELLED),
    S.BLOCKED: (S.FINAL_PAYMENT_INVOICED, S.TICKETED, S.CANCELLED),
    S.FINAL_PAYMENT_INVOICED: (S.FINAL_PAYMENT_RECEIVED, S.CANCELLED),
    S.FINAL_PAYMENT_RECEIVED: (S.TICKETED,),
    S.TICKETED: (S.COMPLETED,),
    S.COMPLETED: (),
    S.CANCELLED: (),
    S.ON_HOLD: (S.QUOTE_REQUESTED, S.CANCELLED),
})

WORKFLOW_STEP_LABELS: Mapping[WorkflowStep, str] = MappingProxyType({
    S.INQUIRY: "Inquiry",
    S.QUOTE_REQUESTED: "Quote requested",
    S.QUOTE_RECEIVED: "Quote received",
    S.CUSTOMER_NOTIFIED: "Customer notified",
    S.CONFIRMED: "Confirmed",
    S.DEPOSIT_INVOICED: "Deposit invoiced",
    S.DEPOSIT_RECEIVED: "Deposit received",
    S.BLOCKED: "Seats blocked",
    S.FINAL_PAYMENT_INVOICED: "Final payment invoiced",
    S.FINAL_PAYMENT_RECEIVED: "Final payment received",
    S.TICKETED: "Ticketed",
    S.COMPLETED: "Completed",
    S.CANCELLED: "Cancelled",
    S.ON_HOLD: "On hold",
})

# Percent complete, for progress bars
WORKFLOW_PROGRESS: Mapping[WorkflowStep, int] = MappingProxyType({
    S.INQUIRY: 5,
    S.QUOTE_REQUESTED: 15,
    S.QUOTE_RECEIVED: 25,
    S.CUSTOMER_NOTIFIED: 35,
    S.CONFIRMED: 45,
    S.DEPOSIT_INVOICED: 55,
    S.DEPOSIT_RECEIVED: 65,
    S.BLOCKED: 75,
    S.FINAL_PAYMENT_INVOICED: 85,
    S.FINAL_PAYMENT_RECEIVED: 90,
    S.TICKETED: 95,
    S.COMPLETED: 100,
    S.CANCELLED: 0,
    S.ON_HOLD: 0,
})

del S

TERMINAL_STEPS = frozenset(step for step, targets in WORKFLOW_TRANSITIONS.items() if not targets)


def allowed_transitions(step: WorkflowStep) -> list[WorkflowStep]:
    """Steps directly reachable from `step`, in table order."""
    return list(WORKFLOW_TRANSITIONS[step])


def is_transition_allowed(current: WorkflowStep, target: WorkflowStep) -> bool:
    return target in WORKFLOW_TRANSITIONS[current]


def is_terminal(step: WorkflowStep) -> bool:
    return step in TERMINAL_STEPS


def parse_step(value: str) -> WorkflowStep | None:
    """Return the step named `value`, or None if it is not a member."""
    try:
        return WorkflowStep(value)
    except ValueError:
        return None
