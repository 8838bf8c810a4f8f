"""
Rule-based skill inference.

Maps keyword clusters found in task text to the skills a task needs.
"""

from typing import Callable, Dict, List

# A skill inferrer turns free text into a list of required skill names.
SkillInferrer = Callable[[str], List[str]]


SKILL_CLUSTERS: Dict[str, Dict[str, List[str]]] = {
    "financial": {
        "keywords": ["p&l", "balance sheet", "financial", "accounting", "budget", "revenue",
                     "invoice", "tax", "payroll"],
        "skills": ["Accounting", "Financial Analysis", "Excel"],
    },
    "legal": {
        "keywords": ["contract", "legal", "compliance", "agreement", "regulation"],
        "skills": ["Legal Research", "Contract Review"],
    },
    "technical": {
        "keywords": ["system", "software", "development", "bug", "technical", "code",
                     "server", "deploy"],
        "skills": ["Programming", "System Administration", "Technical Support"],
    },
    "administrative": {
        "keywords": ["meeting", "schedule", "documentation", "report", "admin"],
        "skills": ["Project Management", "Documentation", "Communication"],
    },
}


def infer_required_skills(text: str) -> List[str]:
    """
    Infer required skills from task text.

    Clusters are checked in a fixed order; each matching cluster contributes
    its skills once.
    """
    content = (text or "").lower()
    skills_needed: List[str] = []

    for cluster in SKILL_CLUSTERS.values():
        if any(keyword in content for keyword in cluster["keywords"]):
            for skill in cluster["skills"]:
                if skill not in skills_needed:
                    skills_needed.append(skill)

    return skills_needed
