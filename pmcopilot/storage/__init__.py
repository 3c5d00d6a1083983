"""
Persistence for saved PRDs, interactive sessions and PRD templates.

Usage:
    from pmcopilot.storage import PRDRepository, create_db_engine, init_db, session_factory

    engine = create_db_engine("sqlite:///prds.db")
    init_db(engine)
    repository = PRDRepository(session_factory(engine))
"""

from pmcopilot.storage.database import create_db_engine, init_db, session_factory
from pmcopilot.storage.models import PRD, Base, InteractiveSession, Template, TemplateSection
from pmcopilot.storage.repository import PRDRepository

__all__ = [
    "create_db_engine",
    "init_db",
    "session_factory",
    "Base",
    "PRD",
    "InteractiveSession",
    "Template",
    "TemplateSection",
    "PRDRepository",
]
