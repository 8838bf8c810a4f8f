"""HTTP adapter tests via httpx.ASGITransport."""

import httpx
import pytest

from conftest import ALICE, BOB, CAROL, ACME, proposal_reply
from taskdesk.config import Settings
from taskdesk.errors import StorageUnavailable
from taskdesk.main import create_app, event_stream


@pytest.fixture
def app(session_factory, completion, broadcaster):
    settings = Settings(database_url="sqlite://", heartbeat_interval=0, commit_timeout=5.0)
    return create_app(
        settings=settings,
        session_factory=session_factory,
        completion_client=completion,
        broadcaster=broadcaster,
    )


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def submit(client, completion, customer_id=ACME):
    completion.replies = [proposal_reply()]
    return await client.post("/triage/submit", json={
        "message": "Please review Acme's P&L by Friday",
        "requester_id": CAROL,
        "customer_id": customer_id,
    })


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_submit_approve_flow(client, completion, roster):
    submitted = await submit(client, completion)
    token = submitted.json()["token"]

    approved = await client.post(f"/triage/{token}/approve", json={"requester_id": CAROL, "customer_id": ACME})
    again = await client.post(f"/triage/{token}/approve", json={"requester_id": CAROL, "customer_id": ACME})

    assert submitted.status_code == 200
    assert submitted.json()["status"] == "awaiting_approval"
    assert approved.status_code == 200
    assert approved.json()["task"]["assignee"]["id"] == ALICE
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "proposal_not_found"


async def test_approve_without_customer(client, completion, roster):
    token = (await submit(client, completion)).json()["token"]

    response = await client.post(f"/triage/{token}/approve", json={"requester_id": CAROL, "customer_id": ""})

    assert response.status_code == 422
    assert response.json()["status"] == "customer_required"


async def test_submit_without_customer(client, completion, roster):
    response = await submit(client, completion, customer_id=None)

    assert response.status_code == 422
    assert response.json()["proposal"]["task_name"] == "Prepare Q3 P&L review"


async def test_submit_blank_requester(client):
    response = await client.post("/triage/submit", json={"message": "hi", "requester_id": " "})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_identifier"


async def test_reject(client, completion, roster):
    token = (await submit(client, completion)).json()["token"]

    rejected = await client.post(f"/triage/{token}/reject")
    unknown = await client.post("/triage/not-a-token/reject")

    assert rejected.json()["status"] == "rejected"
    assert unknown.status_code == 409


async def test_storage_failure_is_503(app, client, monkeypatch):
    async def broken():
        raise StorageUnavailable("database unreachable")

    monkeypatch.setattr(app.state.triage.snapshots, "snapshot", broken)

    response = await client.get("/team/workload")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "storage_unavailable"


async def test_recommend_and_workload(client, roster):
    recommended = await client.post("/triage/recommend", json={"task_description": "Fix the server deploy"})
    workload = await client.get("/team/workload")

    assert recommended.json()["recommendation"]["recommended"]["candidate_id"] == BOB
    assert len(workload.json()["workload"]["workloads"]) == 3


async def test_update_task(client, completion, roster):
    token = (await submit(client, completion)).json()["token"]
    task = (await client.post(f"/triage/{token}/approve",
                              json={"requester_id": CAROL, "customer_id": ACME})).json()["task"]

    forbidden = await client.patch(f"/tasks/{task['id']}", json={"actor_id": BOB, "title": "Mine"})
    invalid = await client.patch(f"/tasks/{task['id']}", json={"actor_id": CAROL, "status": "ARCHIVED"})
    updated = await client.patch(f"/tasks/{task['id']}", json={"actor_id": CAROL, "status": "IN_REVIEW"})
    missing = await client.patch("/tasks/t-missing", json={"actor_id": CAROL, "title": "x"})

    assert forbidden.status_code == 403
    assert invalid.status_code == 422
    assert updated.status_code == 200
    assert updated.json()["task"]["status"] == "IN_REVIEW"
    assert missing.status_code == 404


async def test_events_requires_user(client):
    response = await client.get("/events")

    assert response.status_code == 400


async def test_event_stream_registers_only_while_iterated(broadcaster):
    stream = event_stream(broadcaster, ALICE)

    assert not broadcaster.is_connected(ALICE)

    first = await stream.__anext__()
    assert first["event"] == "connected"
    assert broadcaster.is_connected(ALICE)

    await stream.aclose()
    assert not broadcaster.is_connected(ALICE)
    assert len(broadcaster) == 0
