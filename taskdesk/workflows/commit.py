"""
Task commit step.

Runs the task transaction in a worker thread, then tells live clients and the
assignee. Broadcast and notification problems never change the commit result.
"""

import asyncio
import logging
from typing import Optional, Dict, Any, Set, Tuple, List, Callable
from sqlalchemy.orm import sessionmaker

from taskdesk.db.task_service import TaskService, serialize_task, serialize_activity
from taskdesk.delegation.notifier import AssignmentNotifier
from taskdesk.errors import CommitTimeout
from taskdesk.realtime.broadcaster import Broadcaster
from taskdesk.workflows.models import Proposal, TaskUpdate

logger = logging.getLogger(__name__)

TASK_CREATED_EVENT = "task_created"
TASK_UPDATED_EVENT = "task_updated"
TASK_ACTIVITY_EVENT = "task_activity"


class TaskCommitter:
    """Commits approved proposals and task edits, then publishes them."""

    def __init__(
        self,
        session_factory: sessionmaker,
        broadcaster: Broadcaster,
        timeout: float = 10.0,
        notifier: Optional[AssignmentNotifier] = None
    ):
        self.session_factory = session_factory
        self.broadcaster = broadcaster
        self.timeout = timeout
        self.notifier = notifier
        self._background: Set[asyncio.Task] = set()

    def _create(
        self,
        proposal: Proposal,
        assignee_id: str,
        customer_ref: str,
        requester_id: str,
        customer_by_name: bool
    ) -> Tuple[Dict[str, Any], Dict[str, Any], Optional[str]]:
        db = self.session_factory()
        try:
            task, activity = TaskService(db).create_task(
                proposal, assignee_id, customer_ref, requester_id,
                customer_by_name=customer_by_name
            )
            slack_user_id = task.assignee.slack_user_id if task.assignee else None
            return serialize_task(task), serialize_activity(activity), slack_user_id
        finally:
            db.close()

    def _update(
        self,
        task_id: str,
        actor_id: str,
        changes: TaskUpdate
    ) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        db = self.session_factory()
        try:
            task, activities = TaskService(db).update_task(task_id, actor_id, changes)
            return serialize_task(task), [serialize_activity(a) for a in activities]
        finally:
            db.close()

    def _track(self, task: asyncio.Task):
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run(self, func, *args, on_late: Optional[Callable[[Any], None]] = None):
        """Run ``func`` in a worker thread under the commit timeout.

        The thread cannot be cancelled, so a timed-out write may still land.
        When it does, ``on_late`` receives its result.
        """
        work = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.wait_for(asyncio.shield(work), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Task write exceeded {self.timeout}s, outcome unknown")
            if on_late is not None:
                self._track(asyncio.create_task(self._finish_late(work, on_late)))
            raise CommitTimeout(f"Task write exceeded {self.timeout}s") from e

    async def _finish_late(self, work: asyncio.Future, on_late: Callable[[Any], None]):
        try:
            result = await work
        except Exception as e:
            logger.warning(f"Timed-out task write did not land: {e}")
            return
        logger.info("Timed-out task write landed, publishing it")
        on_late(result)

    def _publish(self, event: str, payload: Dict[str, Any]):
        try:
            self.broadcaster.publish(event, payload)
        except Exception as e:
            logger.error(f"Failed to publish {event}: {e}", exc_info=True)

    async def commit(
        self,
        proposal: Proposal,
        assignee_id: str,
        customer_ref: str,
        requester_id: str,
        customer_by_name: bool = False
    ) -> Dict[str, Any]:
        """Create the task and return it serialized."""
        result = await self._run(
            self._create, proposal, assignee_id, customer_ref, requester_id, customer_by_name,
            on_late=self._announce_created
        )
        self._announce_created(result)
        return result[0]

    def _announce_created(self, result: Tuple[Dict[str, Any], Dict[str, Any], Optional[str]]):
        task, activity, slack_user_id = result
        self._publish(TASK_CREATED_EVENT, task)
        self._publish(TASK_ACTIVITY_EVENT, activity)

        if self.notifier is not None:
            self._track(asyncio.create_task(self.notifier.notify_assignee(task, slack_user_id)))

    async def update(self, task_id: str, actor_id: str, changes: TaskUpdate) -> Dict[str, Any]:
        """Apply a task edit and return the task serialized."""
        result = await self._run(self._update, task_id, actor_id, changes, on_late=self._announce_updated)
        self._announce_updated(result)
        return result[0]

    def _announce_updated(self, result: Tuple[Dict[str, Any], List[Dict[str, Any]]]):
        task, activities = result
        if activities:
            self._publish(TASK_UPDATED_EVENT, task)
            for activity in activities:
                self._publish(TASK_ACTIVITY_EVENT, activity)

    async def drain(self):
        """Wait for late writes and outstanding notifications."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
