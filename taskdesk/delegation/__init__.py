"""Delegation engine for taskdesk - capacity snapshots and skill-aware teammate ranking."""

from taskdesk.delegation.selector import score, recommend
from taskdesk.delegation.skills import infer_required_skills, SkillInferrer
from taskdesk.delegation.snapshot import SnapshotProvider, summarize_workload
from taskdesk.delegation.models import WorkloadSnapshot, MemberCapacity, ScoreResult, Recommendation

__all__ = [
    "score",
    "recommend",
    "infer_required_skills",
    "SkillInferrer",
    "SnapshotProvider",
    "summarize_workload",
    "WorkloadSnapshot",
    "MemberCapacity",
    "ScoreResult",
    "Recommendation",
]
