"""Triage workflow: proposal state machine, approval and commit."""

from taskdesk.workflows.models import (
    Proposal, TaskUpdate, TriageState, TriageEvent, TriageOutcome, OutcomeStatus, transition
)

__all__ = [
    "Proposal",
    "TaskUpdate",
    "TriageState",
    "TriageEvent",
    "TriageOutcome",
    "OutcomeStatus",
    "transition",
]
