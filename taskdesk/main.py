import json
import logging
from contextlib import asynccontextmanager
from typing import Optional, List

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import sessionmaker
from sse_starlette.sse import EventSourceResponse

from taskdesk.agent.completion import CompletionClient, GeminiCompletionClient
from taskdesk.agent.extractor import ProposalExtractor
from taskdesk.config import Settings, load_settings
from taskdesk.delegation.notifier import AssignmentNotifier
from taskdesk.delegation.snapshot import SnapshotProvider
from taskdesk.errors import TaskDeskError, ErrorInfo, require_identifier
from taskdesk.realtime.broadcaster import Broadcaster
from taskdesk.workflows.commit import TaskCommitter
from taskdesk.workflows.models import TaskUpdate, TriageOutcome, OutcomeStatus
from taskdesk.workflows.triage import TriageService

logger = logging.getLogger(__name__)

RETRY_LATER_CODES = {
    "storage_unavailable", "timeout", "snapshot_timeout",
    "completion_timeout", "commit_timeout",
}


def status_for_error(error: ErrorInfo) -> int:
    """HTTP status for a domain error code."""
    if error.code == "invalid_identifier":
        return 400
    if error.code == "permission_denied":
        return 403
    if error.code == "proposal_not_found":
        return 409
    if error.code.endswith("not_found"):
        return 404
    if error.code == "customer_required":
        return 422
    if error.code in RETRY_LATER_CODES:
        return 503
    return 500


def outcome_response(outcome: TriageOutcome) -> JSONResponse:
    status_code = 200
    if outcome.status == OutcomeStatus.CUSTOMER_REQUIRED:
        status_code = 422
    elif outcome.status == OutcomeStatus.ERROR and outcome.error is not None:
        status_code = status_for_error(outcome.error)
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode="json"))


async def event_stream(broadcaster: Broadcaster, user_id: str):
    """SSE frames for one user. The sink exists only while the stream is iterated."""
    sink = broadcaster.subscribe(user_id)
    try:
        yield {"event": "connected", "data": json.dumps({"user_id": user_id})}
        async for frame in sink.frames():
            yield frame
    finally:
        broadcaster.unsubscribe(user_id, sink)


# =============================================================================
# Request bodies
# =============================================================================

class SubmitRequest(BaseModel):
    message: str
    requester_id: str
    customer_id: Optional[str] = None
    auto_approve: bool = False


class ApproveRequest(BaseModel):
    requester_id: str
    customer_id: str = ""
    customer_by_name: bool = False


class RecommendRequest(BaseModel):
    task_description: str
    required_skills: Optional[List[str]] = None


class TaskUpdateRequest(TaskUpdate):
    actor_id: str


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    completion_client: Optional[CompletionClient] = None,
    broadcaster: Optional[Broadcaster] = None
) -> FastAPI:
    """Wire the triage service and its collaborators into a FastAPI app."""
    settings = settings or load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    owns_database = session_factory is None
    if owns_database:
        from taskdesk.db.database import SessionLocal
        session_factory = SessionLocal

    if completion_client is None:
        completion_client = GeminiCompletionClient(
            project_id=settings.gcp_project_id,
            location=settings.gcp_location,
            model=settings.gemini_model,
            temperature=settings.gemini_temperature
        )

    broadcaster = broadcaster or Broadcaster(
        heartbeat_interval=settings.heartbeat_interval,
        queue_size=settings.sink_queue_size
    )
    notifier = AssignmentNotifier(settings.slack_bot_token) if settings.slack_bot_token else None
    committer = TaskCommitter(session_factory, broadcaster, timeout=settings.commit_timeout, notifier=notifier)
    triage = TriageService(
        snapshots=SnapshotProvider(session_factory, timeout=settings.snapshot_timeout),
        extractor=ProposalExtractor(completion_client, timeout=settings.completion_timeout),
        committer=committer,
        auto_approve_enabled=settings.auto_approve_enabled
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            from taskdesk.db.database import init_db
            init_db()
        yield
        broadcaster.close_all()
        await committer.drain()

    app = FastAPI(
        title="taskdesk",
        description="Message triage and skill-aware task assignment",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.broadcaster = broadcaster
    app.state.committer = committer
    app.state.triage = triage

    @app.exception_handler(TaskDeskError)
    async def taskdesk_error_handler(request: Request, exc: TaskDeskError):
        info = exc.to_info()
        return JSONResponse(status_code=status_for_error(info), content={"error": info.model_dump()})

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "service": "taskdesk", "live_clients": len(broadcaster)}

    # =============================================================================
    # Live updates
    # =============================================================================

    @app.get("/events")
    async def events(user_id: str = ""):
        """Server-sent task events for one user."""
        user_id = require_identifier(user_id, "user_id")
        return EventSourceResponse(event_stream(broadcaster, user_id))

    # =============================================================================
    # Triage
    # =============================================================================

    @app.post("/triage/submit")
    async def submit_message(body: SubmitRequest):
        """Analyze a message and park a task proposal for approval."""
        outcome = await triage.submit(
            body.message, body.requester_id, body.customer_id, auto_approve=body.auto_approve
        )
        return outcome_response(outcome)

    @app.post("/triage/{token}/approve")
    async def approve_proposal(token: str, body: ApproveRequest):
        outcome = await triage.approve(
            token, body.requester_id, body.customer_id, customer_by_name=body.customer_by_name
        )
        return outcome_response(outcome)

    @app.post("/triage/{token}/reject")
    async def reject_proposal(token: str):
        return outcome_response(await triage.reject(token))

    @app.post("/triage/recommend")
    async def recommend_assignee(body: RecommendRequest):
        """Rank teammates for a task description."""
        return outcome_response(await triage.recommend(body.task_description, body.required_skills))

    @app.get("/team/workload")
    async def team_workload():
        return outcome_response(await triage.workload_summary())

    # =============================================================================
    # Tasks
    # =============================================================================

    @app.patch("/tasks/{task_id}")
    async def update_task(task_id: str, body: TaskUpdateRequest):
        """Edit a task; each changed field is recorded as an activity."""
        changes = TaskUpdate.model_validate(body.model_dump(exclude_unset=True, exclude={"actor_id"}))
        task = await committer.update(task_id, body.actor_id, changes)
        return {"task": task}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
