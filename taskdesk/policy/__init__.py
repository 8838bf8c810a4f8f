"""Policy layer for taskdesk - approval and mutation guardrails."""

from taskdesk.policy.rules import check_auto_approval, check_task_mutation, GuardrailResult

__all__ = [
    "check_auto_approval",
    "check_task_mutation",
    "GuardrailResult",
]
