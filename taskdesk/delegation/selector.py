"""
Teammate selection algorithm.

Ranks team members for a task based on:
- Declared skills matching the task's required skills
- Current workload (open tasks)
- Role (admins get a small bonus)

Scoring is pure and synchronous; callers supply the snapshot.
"""

import logging
from typing import Optional, List
from taskdesk.db.models import UserRole
from taskdesk.delegation.models import (
    MemberCapacity, WorkloadSnapshot, ScoreResult, MatchedSkill, Recommendation
)
from taskdesk.delegation.skills import SkillInferrer, infer_required_skills

logger = logging.getLogger(__name__)

WORKLOAD_PENALTY_PER_TASK = 2
ADMIN_ROLE_BONUS = 1
MAX_ALTERNATIVES = 2


def skills_match(declared: str, required: str) -> bool:
    """Case-insensitive containment in either direction."""
    declared_lower = declared.strip().lower()
    required_lower = required.strip().lower()
    if not declared_lower or not required_lower:
        return False
    return required_lower in declared_lower or declared_lower in required_lower


def score_candidate(member: MemberCapacity, required_skills: List[str]) -> ScoreResult:
    """Score one candidate against the required skills."""
    skill_match_score = 0

    for needed in required_skills:
        # First declared skill that matches wins for this requirement
        match = next((s for s in member.skills if skills_match(s.name, needed)), None)
        if match:
            skill_match_score += match.level

    matching_skills = [
        MatchedSkill(name=s.name, level=s.level)
        for s in member.skills
        if any(skills_match(s.name, needed) for needed in required_skills)
    ]

    workload_penalty = member.open_task_count * WORKLOAD_PENALTY_PER_TASK
    role_bonus = ADMIN_ROLE_BONUS if member.role == UserRole.ADMIN.value else 0

    return ScoreResult(
        candidate_id=member.id,
        candidate_name=member.name,
        skill_match_score=skill_match_score,
        workload_penalty=workload_penalty,
        role_bonus=role_bonus,
        final_score=skill_match_score + role_bonus - workload_penalty,
        open_task_count=member.open_task_count,
        matching_skills=matching_skills,
    )


def score(required_skills: List[str], snapshot: WorkloadSnapshot) -> List[ScoreResult]:
    """
    Rank every member of the snapshot for the given skills.

    Returns:
        ScoreResults ordered by final_score, highest first. Equal scores keep
        their snapshot order (list.sort is stable, also with reverse=True).
    """
    required = [s for s in required_skills if s and s.strip()]
    scored = [score_candidate(member, required) for member in snapshot.members]
    scored.sort(key=lambda r: r.final_score, reverse=True)
    return scored


def recommend(
    task_description: str,
    snapshot: WorkloadSnapshot,
    required_skills: Optional[List[str]] = None,
    infer: SkillInferrer = infer_required_skills,
) -> Recommendation:
    """
    Select the best teammate for a task.

    Args:
        task_description: Task text, used for skill inference
        snapshot: Roster snapshot to rank
        required_skills: Explicit skills; inferred from the text when omitted
        infer: Skill inference function

    Returns:
        Recommendation with the top pick and up to two alternatives
    """
    skills_needed = list(required_skills) if required_skills else infer(task_description)
    ranked = score(skills_needed, snapshot)

    if not ranked:
        logger.warning("No teammates available for recommendation")
        return Recommendation(required_skills=skills_needed)

    best = ranked[0]
    logger.info(
        f"Selected teammate: {best.candidate_name} (score: {best.final_score}, "
        f"skills: [{', '.join(s.name for s in best.matching_skills)}], "
        f"workload: {best.open_task_count})"
    )

    return Recommendation(
        required_skills=skills_needed,
        recommended=best,
        alternatives=ranked[1:1 + MAX_ALTERNATIVES],
        ranked=ranked,
    )
