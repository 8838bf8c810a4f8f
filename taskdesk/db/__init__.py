"""Database package for the team roster and tasks."""

from taskdesk.db.database import init_db, get_session
from taskdesk.db.models import (
    Base, User, Skill, UserSkill, Customer,
    Tag, TaskTag, Task, TaskActivity
)

__all__ = [
    "init_db",
    "get_session",
    "Base",
    "User",
    "Skill",
    "UserSkill",
    "Customer",
    "Tag",
    "TaskTag",
    "Task",
    "TaskActivity",
]
