"""
Engine and session setup for the PRD store.

SQLite is the default backend. In-memory URLs share a single connection
so every session sees the same database.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pmcopilot.storage.models import Base, Template, TemplateSection

logger = logging.getLogger(__name__)

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


# Seeded on first start; existing rows are never overwritten.
BUILTIN_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "standard-prd",
        "title": "Standard PRD",
        "description": "Full product requirements document for a new product or major feature",
        "category": "general",
        "sections": [
            ("overview", "Overview", "Summary, purpose and value proposition", True),
            ("problem", "Problem", "The user or business problem and why it matters now", True),
            ("job-stories", "Job Stories", "When I..., I want to..., so I can...", True),
            ("success-metrics", "Success Metrics", "How success will be measured", True),
            ("scope", "Scope", "What is in and out of the first release", True),
            ("nfr", "Non-Functional Requirements", "Performance, security, scalability", False),
            ("open-questions", "Open Questions", "Assumptions and unresolved decisions", False),
        ],
    },
    {
        "id": "feature-brief",
        "title": "Feature Brief",
        "description": "Short brief for an incremental feature on an existing product",
        "category": "feature",
        "sections": [
            ("summary", "Summary", "One paragraph describing the feature", True),
            ("motivation", "Motivation", "Evidence that users need it", True),
            ("acceptance", "Acceptance Criteria", "Observable conditions for done", True),
            ("risks", "Risks", "What could go wrong and mitigations", False),
        ],
    },
]


def create_db_engine(url: str = "sqlite:///prds.db", *, echo: bool = False) -> Engine:
    """
    Create an engine for ``url``.

    SQLite connections may be used from FastAPI's thread pool, and foreign
    keys are switched on for every new connection so deleting a PRD
    removes its session.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url in _IN_MEMORY_URLS:
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def session_factory(engine: Engine) -> "sessionmaker[Session]":
    """Sessions that keep loaded attributes after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create missing tables and seed the built-in templates."""
    Base.metadata.create_all(engine)

    added = 0
    with Session(engine) as session:
        for spec in BUILTIN_TEMPLATES:
            if session.get(Template, spec["id"]) is not None:
                continue
            template = Template(
                id=spec["id"],
                title=spec["title"],
                description=spec["description"],
                category=spec["category"],
            )
            for index, (key, name, description, required) in enumerate(spec["sections"]):
                template.sections.append(
                    TemplateSection(
                        id=f"{spec['id']}:{key}",
                        name=name,
                        description=description,
                        required=required,
                        order_index=index,
                    )
                )
            session.add(template)
            added += 1
        session.commit()

    if added:
        logger.info("Seeded %d built-in PRD template(s)", added)
