"""
Proposal extraction.

Turns a free-text message plus a roster snapshot into at most one Proposal.
Reply parsing lives here and nowhere else.
"""

import re
import json
import asyncio
import logging
from datetime import date
from typing import Optional, Tuple, List
from pydantic import ValidationError

from taskdesk.agent.completion import CompletionClient, Message
from taskdesk.agent.prompts import TRIAGE_PROMPT, ROSTER_HEADER
from taskdesk.delegation.models import WorkloadSnapshot
from taskdesk.errors import CompletionTimeout, CompletionError, MalformedProposal
from taskdesk.workflows.models import Proposal

logger = logging.getLogger(__name__)

JSON_BLOCK = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
ANY_BLOCK = re.compile(r"```[\w-]*\s*(.*?)```", re.DOTALL)


def format_roster(snapshot: WorkloadSnapshot) -> str:
    """One line per member: id, name, open tasks, role and top skills."""
    lines = []
    for member in snapshot.members:
        skills = member.top_skills(5)
        skills_text = ""
        if skills:
            skills_text = " (Skills: " + ", ".join(f"{s.name}({s.level})" for s in skills) + ")"
        lines.append(
            f"- ID: {member.id}, Name: {member.name}, Open tasks: {member.open_task_count}, "
            f"Role: {member.role}{skills_text}"
        )
    return "\n".join(lines) if lines else "- (no team members)"


def build_messages(message: str, snapshot: WorkloadSnapshot, current_date: date) -> List[Message]:
    instructions = TRIAGE_PROMPT.format(
        current_date=current_date.strftime("%B %d, %Y"),
        current_day=current_date.strftime("%A"),
    )
    roster = ROSTER_HEADER.format(roster=format_roster(snapshot))
    return [
        {"role": "system", "content": f"{instructions}\n\n{roster}"},
        {"role": "user", "content": message},
    ]


def find_block(reply: str) -> Optional[str]:
    """Body of the first ```json block, else of the first fenced block."""
    match = JSON_BLOCK.search(reply) or ANY_BLOCK.search(reply)
    if not match:
        return None
    return match.group(1).strip()


def parse_proposal(block: str) -> Proposal:
    """Parse a fenced block into a Proposal or raise MalformedProposal."""
    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        raise MalformedProposal(f"Invalid JSON in proposal block: {e}") from e

    if not isinstance(data, dict):
        raise MalformedProposal(f"Proposal block is a {type(data).__name__}, expected an object")

    try:
        return Proposal.model_validate(data)
    except (ValidationError, ValueError, TypeError) as e:
        raise MalformedProposal(f"Proposal block failed validation: {e}") from e


class ProposalExtractor:
    """Asks the completion service for a task proposal."""

    def __init__(self, client: CompletionClient, timeout: float = 60.0):
        self.client = client
        self.timeout = timeout

    async def extract(
        self,
        message: str,
        snapshot: WorkloadSnapshot,
        current_date: date
    ) -> Tuple[Optional[Proposal], str]:
        """
        Extract at most one proposal from a message.

        Returns:
            (proposal or None, raw reply text)

        Raises:
            CompletionTimeout: the completion call exceeded the timeout
            CompletionError: the completion call failed otherwise
        """
        messages = build_messages(message, snapshot, current_date)

        try:
            raw = await asyncio.wait_for(self.client.complete(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Completion timed out after {self.timeout}s")
            raise CompletionTimeout(f"Completion exceeded {self.timeout}s") from e
        except Exception as e:
            logger.error(f"Completion call failed: {e}", exc_info=True)
            raise CompletionError(f"Completion failed: {e}") from e

        raw = raw or ""
        logger.debug(f"Raw completion reply: {raw[:500]}")

        block = find_block(raw)
        if block is None:
            logger.info("No proposal block in reply")
            return None, raw

        try:
            proposal = parse_proposal(block)
        except MalformedProposal as e:
            logger.warning(f"Discarding malformed proposal: {e.message}")
            return None, raw

        logger.info(
            f"Extracted proposal: {proposal.task_name!r} "
            f"(assignee: {proposal.suggested_assignee_id or 'auto'}, customer: {proposal.customer_hint or '-'})"
        )
        return proposal, raw
