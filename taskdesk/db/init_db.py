"""
Database initialization script.

Creates the tables and seeds the skill catalogue:
    python -m taskdesk.db.init_db
"""

import logging
from sqlalchemy.orm import Session

from taskdesk.db.database import init_db, get_session
from taskdesk.db.models import Skill

logger = logging.getLogger(__name__)

# (name, category, description)
DEFAULT_SKILLS = [
    # Finance
    ("Accounting", "Finance", "Financial accounting and bookkeeping"),
    ("Financial Analysis", "Finance", "Financial data analysis and reporting"),
    ("Excel", "Finance", "Spreadsheet modelling"),
    ("Tax Preparation", "Finance", "Tax return preparation and planning"),
    ("Audit", "Finance", "Financial auditing and compliance"),

    # Legal
    ("Legal Research", "Legal", "Researching statutes and case law"),
    ("Contract Review", "Legal", "Drafting and reviewing agreements"),

    # Technical
    ("Programming", "Technical", "Software development"),
    ("System Administration", "Technical", "Servers, networks and deployments"),
    ("Technical Support", "Technical", "Troubleshooting user issues"),

    # Administrative
    ("Project Management", "Administrative", "Managing projects and teams"),
    ("Documentation", "Administrative", "Writing and maintaining documents"),
    ("Communication", "Administrative", "Client and team communication"),
]


def seed_skills(db: Session) -> int:
    """Insert catalogue skills that do not exist yet. Returns how many were added."""
    existing = {name for (name,) in db.query(Skill.name).all()}
    added = 0
    for name, category, description in DEFAULT_SKILLS:
        if name in existing:
            continue
        db.add(Skill(name=name, category=category, description=description))
        added += 1
    db.commit()
    return added


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("Initializing database...")
    init_db()
    session = get_session()
    try:
        print(f"Seeded {seed_skills(session)} skills")
    finally:
        session.close()
    print("Database initialization complete!")
