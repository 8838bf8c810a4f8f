"""
Task service: the only code path that writes tasks.

A task row, its tag links and its activity rows are written in a single
transaction; any failure rolls the whole unit back.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskdesk.db.models import (
    User, Customer, Tag, TaskTag, Task, TaskActivity,
    TaskStatus, ActivityType
)
from taskdesk.errors import (
    StorageUnavailable, RequesterNotFound, AssigneeNotFound,
    CustomerNotFound, TaskNotFound, PermissionDenied, require_identifier
)
from taskdesk.policy.rules import check_task_mutation
from taskdesk.workflows.models import Proposal, TaskUpdate

logger = logging.getLogger(__name__)

# Accepted after ISO-8601 fails
DUE_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%d/%m/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)


def parse_due_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a due date leniently.

    Returns a naive UTC datetime, or None when the value is empty or unparseable.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in DUE_DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        logger.warning(f"Unparseable due date {text!r}, leaving it empty")
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_user(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.display_name,
        "email": user.email,
        "role": user.role,
    }


def serialize_task(task: Task) -> Dict[str, Any]:
    """Fully joined task, as broadcast to live clients."""
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "due_date": _iso(task.due_date),
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
        "assignee": serialize_user(task.assignee),
        "created_by": serialize_user(task.created_by),
        "customer": {"id": task.customer.id, "name": task.customer.name} if task.customer else None,
        "tags": [
            {"id": link.tag.id, "name": link.tag.name, "color": link.tag.color}
            for link in task.tags
        ],
    }


def serialize_activity(activity: TaskActivity) -> Dict[str, Any]:
    return {
        "id": activity.id,
        "task_id": activity.task_id,
        "type": activity.type,
        "metadata": activity.meta_data or {},
        "created_at": _iso(activity.created_at),
        "actor": serialize_user(activity.actor),
    }


class TaskService:
    """Transactional task writes."""

    def __init__(self, db: Session):
        self.db = db

    # =============================================================================
    # Lookups
    # =============================================================================

    def resolve_customer(self, customer_ref: str, task_title: str, by_name: bool = False) -> Customer:
        """
        Find the customer for a new task.

        By id the customer must exist. By name the first case-insensitive
        containment match wins, and a new customer is created when none matches.
        """
        if not by_name:
            customer = self.db.get(Customer, customer_ref)
            if customer is None:
                raise CustomerNotFound(f"Customer {customer_ref} not found")
            return customer

        pattern = customer_ref.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        customer = (
            self.db.query(Customer)
            .filter(Customer.name.ilike(f"%{pattern}%", escape="\\"))
            .order_by(Customer.created_at, Customer.id)
            .first()
        )
        if customer is None:
            customer = Customer(
                name=customer_ref,
                description=f"Auto-created customer from task: {task_title}"
            )
            self.db.add(customer)
            self.db.flush()
            logger.info(f"Created customer {customer_ref!r} for task {task_title!r}")
        return customer

    def resolve_tags(self, names: List[str]) -> List[Tag]:
        """Existing tags matched case-insensitively; missing ones are created."""
        tags = []
        seen = set()
        for name in names:
            key = name.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)

            tag = self.db.query(Tag).filter(func.lower(Tag.name) == key).first()
            if tag is None:
                tag = Tag(name=name.strip())
                self.db.add(tag)
            tags.append(tag)
        return tags

    def _insert_activity(
        self,
        task_id: str,
        actor_id: str,
        activity_type: ActivityType,
        metadata: Dict[str, Any]
    ) -> TaskActivity:
        activity = TaskActivity(
            task_id=task_id,
            actor_id=actor_id,
            type=activity_type.value,
            meta_data=metadata
        )
        self.db.add(activity)
        self.db.flush()
        return activity

    # =============================================================================
    # Commit
    # =============================================================================

    def create_task(
        self,
        proposal: Proposal,
        assignee_id: str,
        customer_ref: str,
        requester_id: str,
        customer_by_name: bool = False
    ) -> Tuple[Task, TaskActivity]:
        """
        Create a task and its TASK_CREATED activity atomically.

        Args:
            proposal: Approved proposal
            assignee_id: Chosen teammate
            customer_ref: Customer id, or a name when customer_by_name is set
            requester_id: User approving the proposal
            customer_by_name: Resolve (or create) the customer by name

        Returns:
            (task, activity)
        """
        requester_id = require_identifier(requester_id, "requester_id")
        assignee_id = require_identifier(assignee_id, "assignee_id")
        customer_ref = require_identifier(customer_ref, "customer_id")

        try:
            requester = self.db.get(User, requester_id)
            if requester is None:
                raise RequesterNotFound(f"Requester {requester_id} not found")

            assignee = self.db.get(User, assignee_id)
            if assignee is None:
                raise AssigneeNotFound(f"Assignee {assignee_id} not found")

            customer = self.resolve_customer(customer_ref, proposal.task_name, by_name=customer_by_name)
            tags = self.resolve_tags(proposal.tags)

            task = Task(
                title=proposal.task_name,
                description=proposal.task_description,
                status=TaskStatus.PENDING.value,
                assignee_id=assignee.id,
                customer_id=customer.id,
                created_by_id=requester.id,
                due_date=parse_due_date(proposal.extracted_due_date),
            )
            for tag in tags:
                task.tags.append(TaskTag(tag=tag))
            self.db.add(task)
            self.db.flush()

            activity = self._insert_activity(
                task.id,
                requester.id,
                ActivityType.TASK_CREATED,
                {
                    "title": task.title,
                    "assignee": assignee.display_name,
                    "customer": customer.name,
                    "tags": [t.name for t in tags],
                    "urgency": proposal.urgency.value,
                }
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Task commit failed: {e}")
            raise StorageUnavailable(f"Could not save task: {e}") from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(task)
        logger.info(f"Task {task.id} created for {assignee.display_name} (customer: {customer.name})")
        return task, activity

    # =============================================================================
    # Mutations
    # =============================================================================

    def update_task(
        self,
        task_id: str,
        actor_id: str,
        changes: TaskUpdate
    ) -> Tuple[Task, List[TaskActivity]]:
        """Apply a partial update, writing one activity per changed field."""
        task_id = require_identifier(task_id, "task_id")
        actor_id = require_identifier(actor_id, "actor_id")
        fields = changes.model_fields_set

        try:
            task = self.db.get(Task, task_id)
            if task is None:
                raise TaskNotFound(f"Task {task_id} not found")

            actor = self.db.get(User, actor_id)
            if actor is None:
                raise RequesterNotFound(f"User {actor_id} not found")

            guard = check_task_mutation(actor.id, actor.role, task.created_by_id)
            if not guard.allowed:
                raise PermissionDenied(guard.reason)

            pending = []

            for field in ("title", "description"):
                if field not in fields:
                    continue
                new_value = getattr(changes, field)
                old_value = getattr(task, field)
                if new_value != old_value:
                    setattr(task, field, new_value)
                    pending.append((ActivityType.TASK_UPDATED, {
                        "field": field,
                        "old_value": old_value,
                        "new_value": new_value,
                    }))

            if "assignee_id" in fields and changes.assignee_id != task.assignee_id:
                new_assignee = None
                if changes.assignee_id:
                    new_assignee = self.db.get(User, changes.assignee_id)
                    if new_assignee is None:
                        raise AssigneeNotFound(f"Assignee {changes.assignee_id} not found")
                old_assignee = task.assignee
                task.assignee_id = new_assignee.id if new_assignee else None
                task.assignee = new_assignee
                pending.append((ActivityType.ASSIGNEE_CHANGED, {
                    "old_assignee": old_assignee.display_name if old_assignee else None,
                    "new_assignee": new_assignee.display_name if new_assignee else None,
                }))

            if "due_date" in fields:
                new_due = parse_due_date(changes.due_date)
                # Unparseable input keeps the current due date
                unparseable = bool(changes.due_date and changes.due_date.strip()) and new_due is None
                if not unparseable and new_due != task.due_date:
                    old_due = task.due_date
                    task.due_date = new_due
                    pending.append((ActivityType.DUE_DATE_CHANGED, {
                        "old_due_date": _iso(old_due),
                        "new_due_date": _iso(new_due),
                    }))

            if "status" in fields and changes.status is not None and changes.status.value != task.status:
                old_status = task.status
                task.status = changes.status.value
                pending.append((ActivityType.STATUS_CHANGED, {
                    "old_status": old_status,
                    "new_status": task.status,
                }))

            activities = [
                self._insert_activity(task.id, actor.id, activity_type, metadata)
                for activity_type, metadata in pending
            ]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Task update failed: {e}")
            raise StorageUnavailable(f"Could not update task: {e}") from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(task)
        if activities:
            logger.info(f"Task {task.id} updated by {actor_id}: {[a.type for a in activities]}")
        return task, activities
