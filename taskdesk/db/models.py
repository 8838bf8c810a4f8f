"""
Database models for the team roster, customers and tasks.

Tasks carry an append-only activity trail; a task row is never written
without its activity row in the same transaction.
"""

import uuid
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Text, DateTime,
    JSON, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Statuses that count towards a member's open workload
OPEN_TASK_STATUSES = (
    TaskStatus.PENDING.value,
    TaskStatus.IN_PROGRESS.value,
    TaskStatus.IN_REVIEW.value,
)


class ActivityType(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ASSIGNEE_CHANGED = "ASSIGNEE_CHANGED"
    DUE_DATE_CHANGED = "DUE_DATE_CHANGED"


class User(Base):
    """A team member who can create and receive tasks."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    slack_user_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)

    # Relationships
    user_skills = relationship("UserSkill", back_populates="user", order_by="UserSkill.id")

    @property
    def display_name(self) -> str:
        return self.name or self.email


class Skill(Base):
    __tablename__ = "skills"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    category = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=True)


class UserSkill(Base):
    """Declared proficiency of a user in a skill."""
    __tablename__ = "user_skills"
    __table_args__ = (UniqueConstraint("user_id", "skill_id"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    skill_id = Column(Integer, ForeignKey("skills.id"), nullable=False, index=True)
    level = Column(Integer, nullable=False)  # 1-5
    years_of_exp = Column(Integer, nullable=True)

    # Relationships
    user = relationship("User", back_populates="user_skills")
    skill = relationship("Skill")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False, index=True)
    description = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), unique=True, nullable=False)
    color = Column(String(20), nullable=False, default="#6B7280")


class TaskTag(Base):
    """Task <-> tag association (many-to-many)."""
    __tablename__ = "task_tags"

    task_id = Column(String(36), ForeignKey("tasks.id"), primary_key=True)
    tag_id = Column(String(36), ForeignKey("tags.id"), primary_key=True)

    # Relationships
    task = relationship("Task", back_populates="tags")
    tag = relationship("Tag")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)  # Rich text (HTML/JSON) as produced by the editor
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value, index=True)
    assignee_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    assignee = relationship("User", foreign_keys=[assignee_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    customer = relationship("Customer")
    tags = relationship("TaskTag", back_populates="task", cascade="all, delete-orphan")
    activities = relationship("TaskActivity", back_populates="task", order_by="TaskActivity.created_at")


class TaskActivity(Base):
    """Append-only audit trail entry for a task."""
    __tablename__ = "task_activities"

    id = Column(String(36), primary_key=True, default=_new_id)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
    actor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    meta_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)

    # Relationships
    task = relationship("Task", back_populates="activities")
    actor = relationship("User")
