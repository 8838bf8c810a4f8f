"""
Error taxonomy for taskdesk.

Every domain failure carries a stable ``code`` and a ``retryable`` flag so the
triage layer can turn it into a structured outcome instead of a crash.
"""

from typing import Optional
from pydantic import BaseModel


class ErrorInfo(BaseModel):
    """Serializable view of a TaskDeskError."""
    code: str
    message: str
    retryable: bool = False


class TaskDeskError(Exception):
    """Base class for all taskdesk errors."""
    code = "internal_error"
    retryable = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(code=self.code, message=self.message, retryable=self.retryable)


class StorageUnavailable(TaskDeskError):
    """Backing store could not be reached or rejected the operation."""
    code = "storage_unavailable"


class OperationTimeout(TaskDeskError):
    """A blocking operation exceeded its timeout."""
    code = "timeout"
    retryable = True


class SnapshotTimeout(OperationTimeout):
    code = "snapshot_timeout"


class CompletionTimeout(OperationTimeout):
    code = "completion_timeout"


class CommitTimeout(OperationTimeout):
    code = "commit_timeout"


class CompletionError(TaskDeskError):
    """Completion service call failed for a reason other than a timeout."""
    code = "completion_error"


class MalformedProposal(TaskDeskError):
    """Structured block found in the model reply but it could not be parsed."""
    code = "malformed_proposal"


class MissingCustomer(TaskDeskError):
    """A proposal cannot be approved until a customer is selected."""
    code = "customer_required"


class InvalidIdentifier(TaskDeskError):
    """A required identifier was empty or blank."""
    code = "invalid_identifier"


class NotFoundError(TaskDeskError):
    code = "not_found"


class AssigneeNotFound(NotFoundError):
    code = "assignee_not_found"


class CustomerNotFound(NotFoundError):
    code = "customer_not_found"


class RequesterNotFound(NotFoundError):
    code = "requester_not_found"


class TaskNotFound(NotFoundError):
    code = "task_not_found"


class ProposalNotFound(NotFoundError):
    """Token is unknown or its proposal was already approved/rejected."""
    code = "proposal_not_found"


class PermissionDenied(TaskDeskError):
    code = "permission_denied"


class InvalidTransition(TaskDeskError):
    code = "invalid_transition"


def require_identifier(value: Optional[str], field: str) -> str:
    """Return the stripped identifier or raise InvalidIdentifier."""
    if value is None or not str(value).strip():
        raise InvalidIdentifier(f"Invalid {field}: cannot be empty")
    return str(value).strip()
