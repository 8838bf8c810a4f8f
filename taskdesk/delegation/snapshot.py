"""
Capacity snapshot provider.

Reads the roster with declared skills and open-task counts in one pass.
"""

import asyncio
import logging
from typing import Dict
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, selectinload

from taskdesk.db.models import User, UserSkill, Task, OPEN_TASK_STATUSES
from taskdesk.delegation.models import (
    SkillEntry, MemberCapacity, WorkloadSnapshot, MemberWorkload, WorkloadSummary
)
from taskdesk.errors import StorageUnavailable, SnapshotTimeout

logger = logging.getLogger(__name__)


def read_snapshot(db: Session) -> WorkloadSnapshot:
    """Build a WorkloadSnapshot from an open session."""
    open_counts: Dict[str, int] = dict(
        db.query(Task.assignee_id, func.count(Task.id))
        .filter(Task.assignee_id.isnot(None), Task.status.in_(OPEN_TASK_STATUSES))
        .group_by(Task.assignee_id)
        .all()
    )

    users = (
        db.query(User)
        .options(selectinload(User.user_skills).selectinload(UserSkill.skill))
        .order_by(User.created_at, User.id)
        .all()
    )

    members = []
    for user in users:
        members.append(MemberCapacity(
            id=user.id,
            name=user.display_name,
            email=user.email,
            role=user.role,
            skills=[
                SkillEntry(
                    name=us.skill.name,
                    category=us.skill.category,
                    level=us.level,
                    years_of_experience=us.years_of_exp,
                )
                for us in user.user_skills
            ],
            open_task_count=open_counts.get(user.id, 0),
        ))

    return WorkloadSnapshot(members=members)


class SnapshotProvider:
    """Reads WorkloadSnapshots off the event loop, bounded by a timeout."""

    def __init__(self, session_factory: sessionmaker, timeout: float = 5.0):
        self.session_factory = session_factory
        self.timeout = timeout

    def _read(self) -> WorkloadSnapshot:
        db = self.session_factory()
        try:
            return read_snapshot(db)
        except SQLAlchemyError as e:
            logger.error(f"Snapshot read failed: {e}")
            raise StorageUnavailable(f"Could not read team roster: {e}") from e
        finally:
            db.close()

    async def snapshot(self) -> WorkloadSnapshot:
        try:
            snapshot = await asyncio.wait_for(asyncio.to_thread(self._read), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SnapshotTimeout(f"Roster snapshot exceeded {self.timeout}s") from e

        logger.info(f"Workload snapshot taken: {len(snapshot.members)} members")
        return snapshot


def _availability(open_tasks: int) -> str:
    if open_tasks == 0:
        return "Available"
    if open_tasks < 3:
        return "Moderate"
    return "Heavy"


def summarize_workload(snapshot: WorkloadSnapshot) -> WorkloadSummary:
    """Team workload overview for display."""
    workloads = []
    for member in snapshot.members:
        top = ", ".join(f"{s.name}({s.level})" for s in member.top_skills(3))
        workloads.append(MemberWorkload(
            id=member.id,
            name=member.name,
            role=member.role,
            open_tasks=member.open_task_count,
            status=_availability(member.open_task_count),
            top_skills=top or "No skills defined",
            skill_count=len(member.skills),
        ))

    summary = "Team Workload: " + ", ".join(
        f"{w.name}: {w.open_tasks} tasks ({w.status})" for w in workloads
    )
    return WorkloadSummary(workloads=workloads, summary=summary)
