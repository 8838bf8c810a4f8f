"""Data models for triage orchestration."""

import uuid
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskdesk.db.models import TaskStatus
from taskdesk.delegation.models import WorkloadSnapshot, Recommendation
from taskdesk.errors import ErrorInfo, InvalidTransition


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Proposal(BaseModel):
    """A candidate task extracted from free text, not yet committed."""
    model_config = ConfigDict(populate_by_name=True)

    task_name: str = Field(alias="taskName", min_length=1)
    task_description: str = Field(alias="taskDescription")
    suggested_assignee_id: Optional[str] = Field(default=None, alias="assigneeId")
    suggested_assignee_name: Optional[str] = Field(default=None, alias="assigneeName")
    extracted_due_date: Optional[str] = Field(default=None, alias="extractedDueDate")
    customer_hint: Optional[str] = Field(default=None, alias="customerName")
    tags: List[str] = []
    urgency: Urgency = Urgency.MEDIUM

    @field_validator("suggested_assignee_id", "suggested_assignee_name",
                     "extracted_due_date", "customer_hint", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("urgency", mode="before")
    @classmethod
    def _normalize_urgency(cls, value):
        # Unknown urgency text degrades to MEDIUM instead of rejecting the proposal
        if isinstance(value, str) and value.strip().upper() in Urgency.__members__:
            return value.strip().upper()
        return Urgency.MEDIUM

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [str(t).strip() for t in value if str(t).strip()]


class TaskUpdate(BaseModel):
    """Partial task edit; only fields explicitly set are applied."""
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[TaskStatus] = None


class TriageState(str, Enum):
    IDLE = "idle"
    SNAPSHOT = "snapshot"
    ANALYZE = "analyze"
    NO_PROPOSAL = "no_proposal"
    AWAITING_APPROVAL = "awaiting_approval"
    COMMITTED = "committed"
    REJECTED = "rejected"


class TriageEvent(str, Enum):
    SUBMIT = "submit"
    SNAPSHOT_READY = "snapshot_ready"
    NO_PROPOSAL_FOUND = "no_proposal_found"
    PROPOSAL_FOUND = "proposal_found"
    CUSTOMER_MISSING = "customer_missing"
    APPROVE = "approve"
    REJECT = "reject"
    FAIL = "fail"
    RESET = "reset"


TRANSITIONS: Dict[tuple, TriageState] = {
    (TriageState.IDLE, TriageEvent.SUBMIT): TriageState.SNAPSHOT,
    (TriageState.SNAPSHOT, TriageEvent.SNAPSHOT_READY): TriageState.ANALYZE,
    (TriageState.SNAPSHOT, TriageEvent.FAIL): TriageState.IDLE,
    (TriageState.ANALYZE, TriageEvent.NO_PROPOSAL_FOUND): TriageState.NO_PROPOSAL,
    (TriageState.ANALYZE, TriageEvent.PROPOSAL_FOUND): TriageState.AWAITING_APPROVAL,
    (TriageState.ANALYZE, TriageEvent.CUSTOMER_MISSING): TriageState.IDLE,
    (TriageState.AWAITING_APPROVAL, TriageEvent.APPROVE): TriageState.COMMITTED,
    (TriageState.AWAITING_APPROVAL, TriageEvent.REJECT): TriageState.REJECTED,
    (TriageState.AWAITING_APPROVAL, TriageEvent.FAIL): TriageState.IDLE,
    (TriageState.NO_PROPOSAL, TriageEvent.RESET): TriageState.IDLE,
    (TriageState.COMMITTED, TriageEvent.RESET): TriageState.IDLE,
    (TriageState.REJECTED, TriageEvent.RESET): TriageState.IDLE,
}

TERMINAL_STATES = {TriageState.NO_PROPOSAL, TriageState.COMMITTED, TriageState.REJECTED}


def transition(state: TriageState, event: TriageEvent) -> TriageState:
    """Next state for (state, event); unlisted pairs are rejected."""
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"Cannot apply {event.value} in state {state.value}") from None


class TriageRun(BaseModel):
    """One message's trip through the triage state machine."""
    token: str = Field(default_factory=lambda: uuid.uuid4().hex)
    message: str
    requester_id: str
    customer_id: Optional[str] = None
    state: TriageState = TriageState.IDLE
    snapshot: Optional[WorkloadSnapshot] = None
    proposal: Optional[Proposal] = None
    analysis: Optional[str] = None

    def advance(self, event: TriageEvent) -> TriageState:
        self.state = transition(self.state, event)
        return self.state


class OutcomeStatus(str, Enum):
    NO_PROPOSAL = "no_proposal"
    AWAITING_APPROVAL = "awaiting_approval"
    CUSTOMER_REQUIRED = "customer_required"
    COMMITTED = "committed"
    REJECTED = "rejected"
    RECOMMENDATION = "recommendation"
    ERROR = "error"


class TriageOutcome(BaseModel):
    """Structured result of every caller-facing triage operation."""
    status: OutcomeStatus
    token: Optional[str] = None
    proposal: Optional[Proposal] = None
    analysis: Optional[str] = None
    task: Optional[Dict[str, Any]] = None
    recommendation: Optional[Recommendation] = None
    workload: Optional[Dict[str, Any]] = None
    error: Optional[ErrorInfo] = None
