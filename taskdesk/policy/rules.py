"""
Guardrails for automatic approval and task mutation.

Ensures actions are allowed before they touch storage.
"""

from typing import Optional, Dict
from pydantic import BaseModel

from taskdesk.db.models import UserRole


class GuardrailResult(BaseModel):
    """Result of guardrail checks."""
    allowed: bool
    reason: str
    checks: Dict[str, bool]  # Individual check results


def check_auto_approval(
    proposal,
    customer_id: Optional[str],
    requested: bool,
    automation_enabled: bool = False
) -> GuardrailResult:
    """
    Check whether a proposal may be committed without a human approval step.

    Args:
        proposal: The extracted Proposal
        customer_id: Customer chosen by the caller
        requested: Caller asked for auto-approval
        automation_enabled: Deployment allows auto-approval at all
    """
    checks = {}
    reasons = []

    # Check 1: Caller opted in
    checks["requested"] = requested
    if not requested:
        reasons.append("Auto-approval not requested")

    # Check 2: Deployment opt-in
    checks["automation_enabled"] = automation_enabled
    if not automation_enabled:
        reasons.append("Auto-approval is disabled for this deployment")

    # Check 3: Customer must already be resolved
    checks["customer_selected"] = bool(customer_id and customer_id.strip())
    if not checks["customer_selected"]:
        reasons.append("Customer selection required")

    # Check 4: Proposal must carry a title
    checks["has_title"] = bool(proposal is not None and proposal.task_name.strip())
    if not checks["has_title"]:
        reasons.append("Proposal has no task name")

    allowed = all(checks.values())
    reason = "; ".join(reasons) if reasons else "All checks passed"

    return GuardrailResult(
        allowed=allowed,
        reason=reason,
        checks=checks
    )


def check_task_mutation(
    actor_id: str,
    actor_role: str,
    created_by_id: str
) -> GuardrailResult:
    """Only the task's creator or an admin may mutate it."""
    checks = {
        "is_creator": actor_id == created_by_id,
        "is_admin": actor_role == UserRole.ADMIN.value,
    }
    allowed = any(checks.values())
    reason = "All checks passed" if allowed else "Only the task creator or an admin may modify this task"

    return GuardrailResult(
        allowed=allowed,
        reason=reason,
        checks=checks
    )
