"""
Triage service.

Drives one message through snapshot -> extraction -> approval -> commit and
turns every failure into a TriageOutcome.
"""

import logging
import threading
from datetime import date
from typing import Optional, List, Dict, Callable, Tuple

from taskdesk.agent.extractor import ProposalExtractor
from taskdesk.delegation.models import Recommendation
from taskdesk.delegation.selector import recommend
from taskdesk.delegation.skills import infer_required_skills, SkillInferrer
from taskdesk.delegation.snapshot import SnapshotProvider, summarize_workload
from taskdesk.errors import (
    TaskDeskError, InvalidIdentifier, MissingCustomer, ProposalNotFound,
    AssigneeNotFound, CommitTimeout, require_identifier
)
from taskdesk.policy.rules import check_auto_approval
from taskdesk.workflows.commit import TaskCommitter
from taskdesk.workflows.models import (
    TriageRun, TriageEvent, TriageOutcome, OutcomeStatus
)

logger = logging.getLogger(__name__)

NO_TASK_ANALYSIS = "No actionable task was found in this message."


class PendingProposals:
    """Runs awaiting approval, keyed by token. Each token is claimed at most once."""

    def __init__(self):
        self._runs: Dict[str, TriageRun] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._runs

    def add(self, run: TriageRun):
        with self._lock:
            self._runs[run.token] = run

    def claim(self, token: str) -> Optional[TriageRun]:
        """Remove and return the run; None if unknown or already claimed."""
        with self._lock:
            return self._runs.pop(token, None)

    def restore(self, run: TriageRun):
        """Put a claimed run back after a failed commit that rolled back."""
        with self._lock:
            self._runs.setdefault(run.token, run)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class TriageService:
    """Caller-facing triage operations."""

    def __init__(
        self,
        snapshots: SnapshotProvider,
        extractor: ProposalExtractor,
        committer: TaskCommitter,
        infer: SkillInferrer = infer_required_skills,
        auto_approve_enabled: bool = False,
        clock: Callable[[], date] = date.today
    ):
        self.snapshots = snapshots
        self.extractor = extractor
        self.committer = committer
        self.infer = infer
        self.auto_approve_enabled = auto_approve_enabled
        self.clock = clock
        self.pending = PendingProposals()

    def _error(self, error: TaskDeskError, token: Optional[str] = None, **fields) -> TriageOutcome:
        logger.warning(f"Triage operation failed [{error.code}]: {error.message}")
        return TriageOutcome(status=OutcomeStatus.ERROR, token=token, error=error.to_info(), **fields)

    # =============================================================================
    # Submit
    # =============================================================================

    async def submit(
        self,
        message: str,
        requester_id: str,
        customer_id: Optional[str] = None,
        auto_approve: bool = False
    ) -> TriageOutcome:
        """
        Analyze a message and, if it holds a task, park the proposal for approval.

        Args:
            message: Free text (email, chat, call notes)
            requester_id: User submitting the message
            customer_id: Customer the task will belong to
            auto_approve: Commit immediately if the auto-approval guardrail allows it
        """
        try:
            requester_id = require_identifier(requester_id, "requester_id")
        except InvalidIdentifier as e:
            return self._error(e)

        run = TriageRun(
            message=message or "",
            requester_id=requester_id,
            customer_id=None if _blank(customer_id) else customer_id.strip(),
        )
        run.advance(TriageEvent.SUBMIT)

        try:
            run.snapshot = await self.snapshots.snapshot()
        except TaskDeskError as e:
            run.advance(TriageEvent.FAIL)
            return self._error(e)
        run.advance(TriageEvent.SNAPSHOT_READY)

        try:
            proposal, raw = await self.extractor.extract(run.message, run.snapshot, self.clock())
        except TaskDeskError as e:
            # Extraction failures end the run without a proposal
            run.advance(TriageEvent.NO_PROPOSAL_FOUND)
            logger.warning(f"Extraction failed for run {run.token}: {e.message}")
            return TriageOutcome(
                status=OutcomeStatus.NO_PROPOSAL,
                analysis=f"The message could not be analyzed: {e.message}",
                error=e.to_info(),
            )

        run.analysis = raw.strip() or NO_TASK_ANALYSIS

        if proposal is None:
            run.advance(TriageEvent.NO_PROPOSAL_FOUND)
            return TriageOutcome(status=OutcomeStatus.NO_PROPOSAL, analysis=run.analysis)

        run.proposal = proposal

        if run.customer_id is None:
            run.advance(TriageEvent.CUSTOMER_MISSING)
            return TriageOutcome(
                status=OutcomeStatus.CUSTOMER_REQUIRED,
                proposal=proposal,
                analysis=run.analysis,
                error=MissingCustomer("Customer selection required").to_info(),
            )

        run.advance(TriageEvent.PROPOSAL_FOUND)
        self.pending.add(run)
        logger.info(f"Proposal {run.token} awaiting approval: {proposal.task_name!r}")

        if auto_approve:
            guard = check_auto_approval(proposal, run.customer_id, auto_approve, self.auto_approve_enabled)
            if guard.allowed:
                claimed = self.pending.claim(run.token)
                if claimed is not None:
                    logger.info(f"Auto-approving proposal {run.token}")
                    return await self._commit(claimed, requester_id, claimed.customer_id)
            else:
                logger.info(f"Auto-approval skipped for {run.token}: {guard.reason}")

        return TriageOutcome(
            status=OutcomeStatus.AWAITING_APPROVAL,
            token=run.token,
            proposal=proposal,
            analysis=run.analysis,
        )

    # =============================================================================
    # Approve / reject
    # =============================================================================

    async def approve(
        self,
        token: str,
        requester_id: str,
        customer_id: str,
        customer_by_name: bool = False
    ) -> TriageOutcome:
        """Commit a pending proposal. The token stays pending on precondition failures."""
        if _blank(customer_id):
            error = MissingCustomer("Customer selection required")
            return TriageOutcome(status=OutcomeStatus.CUSTOMER_REQUIRED, token=token, error=error.to_info())

        try:
            requester_id = require_identifier(requester_id, "requester_id")
        except InvalidIdentifier as e:
            return self._error(e, token=token)

        run = self.pending.claim(token) if token else None
        if run is None:
            return self._error(ProposalNotFound(f"No pending proposal for token {token!r}"), token=token)

        return await self._commit(run, requester_id, customer_id.strip(), customer_by_name)

    def _choose_assignee(self, run: TriageRun) -> Tuple[str, Optional[Recommendation]]:
        proposal = run.proposal
        suggested = proposal.suggested_assignee_id
        if suggested:
            if run.snapshot.get(suggested) is not None:
                return suggested, None
            logger.warning(f"Suggested assignee {suggested} is not on the roster")

        if proposal.suggested_assignee_name:
            member = run.snapshot.find(proposal.suggested_assignee_name)
            if member is not None:
                logger.info(f"Proposal {run.token} assigned by name to {member.name}")
                return member.id, None
            logger.warning(f"No team member matches {proposal.suggested_assignee_name!r}, using the scorer")

        recommendation = recommend(proposal.task_description, run.snapshot, infer=self.infer)
        best = recommendation.recommended
        if best is None:
            raise AssigneeNotFound("No team members available for assignment")

        logger.info(f"Proposal {run.token} assigned by score to {best.candidate_name}")
        return best.candidate_id, recommendation

    async def _commit(
        self,
        run: TriageRun,
        requester_id: str,
        customer_ref: str,
        customer_by_name: bool = False
    ) -> TriageOutcome:
        try:
            assignee_id, recommendation = self._choose_assignee(run)
            task = await self.committer.commit(
                run.proposal, assignee_id, customer_ref, requester_id,
                customer_by_name=customer_by_name
            )
        except CommitTimeout as e:
            # Outcome unknown; the token is spent
            run.advance(TriageEvent.FAIL)
            return self._error(e, token=run.token, proposal=run.proposal)
        except TaskDeskError as e:
            self.pending.restore(run)
            return self._error(e, token=run.token, proposal=run.proposal)
        except Exception as e:
            logger.error(f"Unexpected commit failure for {run.token}: {e}", exc_info=True)
            run.advance(TriageEvent.FAIL)
            return self._error(TaskDeskError(f"Unexpected error: {e}"), token=run.token, proposal=run.proposal)

        run.advance(TriageEvent.APPROVE)
        return TriageOutcome(
            status=OutcomeStatus.COMMITTED,
            token=run.token,
            proposal=run.proposal,
            analysis=run.analysis,
            task=task,
            recommendation=recommendation,
        )

    async def reject(self, token: str) -> TriageOutcome:
        """Discard a pending proposal without touching storage."""
        run = self.pending.claim(token) if token else None
        if run is None:
            return self._error(ProposalNotFound(f"No pending proposal for token {token!r}"), token=token)

        run.advance(TriageEvent.REJECT)
        logger.info(f"Proposal {token} rejected")
        return TriageOutcome(status=OutcomeStatus.REJECTED, token=token, proposal=run.proposal)

    # =============================================================================
    # Read-only helpers
    # =============================================================================

    async def recommend(self, task_description: str, required_skills: Optional[List[str]] = None) -> TriageOutcome:
        """Rank teammates for a task against a fresh snapshot."""
        try:
            snapshot = await self.snapshots.snapshot()
        except TaskDeskError as e:
            return self._error(e)

        recommendation = recommend(task_description or "", snapshot, required_skills=required_skills, infer=self.infer)
        return TriageOutcome(status=OutcomeStatus.RECOMMENDATION, recommendation=recommendation)

    async def workload_summary(self) -> TriageOutcome:
        """Team workload overview against a fresh snapshot."""
        try:
            snapshot = await self.snapshots.snapshot()
        except TaskDeskError as e:
            return self._error(e)

        summary = summarize_workload(snapshot)
        return TriageOutcome(
            status=OutcomeStatus.RECOMMENDATION,
            analysis=summary.summary,
            workload=summary.model_dump(),
        )
