"""
Pytest Configuration and Shared Fixtures

- In-memory SQLite database with a seeded roster
- Scripted completion client
- Broadcaster, committer and triage service wired to the test database
"""

import json
import asyncio
from datetime import date, datetime
from typing import List, Optional, Union

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from taskdesk.db.database import build_session_factory, init_db
from taskdesk.db.models import User, Skill, UserSkill, Customer, Task, UserRole, TaskStatus
from taskdesk.agent.extractor import ProposalExtractor
from taskdesk.delegation.snapshot import SnapshotProvider
from taskdesk.realtime.broadcaster import Broadcaster
from taskdesk.workflows.commit import TaskCommitter
from taskdesk.workflows.triage import TriageService

TODAY = date(2026, 10, 19)

ALICE = "u-alice"
BOB = "u-bob"
CAROL = "u-carol"
ACME = "c-acme"


def proposal_reply(**overrides) -> str:
    """A completion reply carrying one fenced proposal block."""
    payload = {
        "taskName": "Prepare Q3 P&L review",
        "taskDescription": "Review the Q3 P&L and balance sheet for Acme and flag anomalies.",
        "assigneeId": None,
        "assigneeName": None,
        "extractedDueDate": "2026-10-23",
        "customerName": "Acme",
        "urgency": "HIGH",
        "tags": ["finance"],
    }
    payload.update(overrides)
    return "Here is the task I suggest.\n\n```json\n" + json.dumps(payload) + "\n```\n"


class FakeCompletionClient:
    """Returns scripted replies in order and records every request."""

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None, delay: float = 0.0):
        self.replies = list(replies or [])
        self.delay = delay
        self.requests = []

    async def complete(self, messages):
        self.requests.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else "Nothing to do here."
        if isinstance(reply, Exception):
            raise reply
        return reply


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def roster(db):
    """
    Three teammates with explicit ids and creation times:

    - Alice: Accounting 5, Excel 4, no open tasks
    - Bob: Programming 5, Accounting 3, one open task
    - Carol (admin): Project Management 3, no open tasks
    """
    skills = {
        name: Skill(name=name, category=category)
        for name, category in [
            ("Accounting", "financial"),
            ("Excel", "financial"),
            ("Programming", "technical"),
            ("Project Management", "administrative"),
        ]
    }
    db.add_all(skills.values())

    alice = User(id=ALICE, name="Alice", email="alice@example.com",
                 role=UserRole.USER.value, slack_user_id="UALICE", created_at=datetime(2024, 1, 1))
    bob = User(id=BOB, name="Bob", email="bob@example.com",
               role=UserRole.USER.value, created_at=datetime(2024, 1, 2))
    carol = User(id=CAROL, name="Carol", email="carol@example.com",
                 role=UserRole.ADMIN.value, created_at=datetime(2024, 1, 3))
    db.add_all([alice, bob, carol])
    db.flush()

    db.add_all([
        UserSkill(user_id=ALICE, skill_id=skills["Accounting"].id, level=5),
        UserSkill(user_id=ALICE, skill_id=skills["Excel"].id, level=4),
        UserSkill(user_id=BOB, skill_id=skills["Programming"].id, level=5),
        UserSkill(user_id=BOB, skill_id=skills["Accounting"].id, level=3),
        UserSkill(user_id=CAROL, skill_id=skills["Project Management"].id, level=3),
    ])

    acme = Customer(id=ACME, name="Acme Corp")
    db.add(acme)
    db.flush()

    db.add(Task(title="Existing work", status=TaskStatus.IN_PROGRESS.value,
                assignee_id=BOB, customer_id=ACME, created_by_id=CAROL))
    db.add(Task(title="Finished work", status=TaskStatus.COMPLETED.value,
                assignee_id=ALICE, customer_id=ACME, created_by_id=CAROL))
    db.commit()

    return {"alice": alice, "bob": bob, "carol": carol, "acme": acme}


# ============================================================================
# SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def broadcaster():
    return Broadcaster(heartbeat_interval=0, queue_size=10)


@pytest.fixture
def completion():
    return FakeCompletionClient()


@pytest.fixture
def committer(session_factory, broadcaster):
    return TaskCommitter(session_factory, broadcaster, timeout=5.0)


@pytest.fixture
def triage(session_factory, completion, committer):
    return TriageService(
        snapshots=SnapshotProvider(session_factory, timeout=5.0),
        extractor=ProposalExtractor(completion, timeout=5.0),
        committer=committer,
        clock=lambda: TODAY,
    )
