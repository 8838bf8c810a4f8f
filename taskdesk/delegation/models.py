"""Data models for the delegation engine."""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class SkillEntry(BaseModel):
    """A declared skill of a team member."""
    name: str
    category: Optional[str] = None
    level: int = Field(ge=1, le=5)
    years_of_experience: Optional[int] = None


class MemberCapacity(BaseModel):
    """One roster entry in a workload snapshot."""
    id: str
    name: str
    email: Optional[str] = None
    role: str = "USER"
    skills: List[SkillEntry] = []
    open_task_count: int = 0

    def top_skills(self, limit: int = 3) -> List[SkillEntry]:
        """Highest-level skills first, declared order on ties."""
        return sorted(self.skills, key=lambda s: s.level, reverse=True)[:limit]


class WorkloadSnapshot(BaseModel):
    """Point-in-time roster read. Member order is the scorer's tie-break order."""
    members: List[MemberCapacity] = []
    taken_at: datetime = Field(default_factory=datetime.utcnow)

    def get(self, member_id: str) -> Optional[MemberCapacity]:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def find(self, ref: str) -> Optional[MemberCapacity]:
        """First member whose name contains ``ref`` or whose email equals it, case-insensitive."""
        needle = (ref or "").strip().lower()
        if not needle:
            return None
        for member in self.members:
            if needle in member.name.lower() or (member.email or "").lower() == needle:
                return member
        return None


class MatchedSkill(BaseModel):
    name: str
    level: int


class ScoreResult(BaseModel):
    """Scored candidate with the factors behind the score."""
    candidate_id: str
    candidate_name: str
    skill_match_score: int
    workload_penalty: int
    role_bonus: int
    final_score: int
    open_task_count: int
    matching_skills: List[MatchedSkill] = []


class Recommendation(BaseModel):
    """Ranked candidates for a task; the head of the list is the pick."""
    required_skills: List[str]
    recommended: Optional[ScoreResult] = None
    alternatives: List[ScoreResult] = []
    ranked: List[ScoreResult] = []


class MemberWorkload(BaseModel):
    id: str
    name: str
    role: str
    open_tasks: int
    status: str  # "Available", "Moderate", "Heavy"
    top_skills: str
    skill_count: int


class WorkloadSummary(BaseModel):
    workloads: List[MemberWorkload]
    summary: str
