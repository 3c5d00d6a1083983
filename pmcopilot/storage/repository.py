"""
Data access for PRDs, their interactive sessions and templates.

Methods are synchronous; async callers go through a thread pool.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from pmcopilot.storage.models import PRD, InteractiveSession, Template, utc_now

logger = logging.getLogger(__name__)

_UPDATABLE_PRD_FIELDS = ("title", "content", "template_id")


class PRDRepository:
    def __init__(self, sessions: "sessionmaker[Session]") -> None:
        self._sessions = sessions

    # PRDs

    def list_prds(self) -> List[PRD]:
        """All PRDs, most recently updated first."""
        with self._sessions() as session:
            stmt = select(PRD).order_by(PRD.updated_at.desc(), PRD.created_at.desc())
            return list(session.scalars(stmt))

    def get_prd(self, prd_id: str) -> Optional[PRD]:
        with self._sessions() as session:
            return session.get(PRD, prd_id)

    def create_prd(
        self, *, title: str, content: str = "", template_id: Optional[str] = None
    ) -> PRD:
        prd = PRD(title=title, content=content, template_id=template_id)
        with self._sessions() as session:
            session.add(prd)
            session.commit()
        logger.info("Created PRD %s", prd.id)
        return prd

    def update_prd(self, prd_id: str, **changes: Any) -> Optional[PRD]:
        """
        Apply the non-None fields of ``changes``.

        Returns:
            The updated PRD, or None when it does not exist.
        """
        with self._sessions() as session:
            prd = session.get(PRD, prd_id)
            if prd is None:
                return None
            for name in _UPDATABLE_PRD_FIELDS:
                value = changes.get(name)
                if value is not None:
                    setattr(prd, name, value)
            prd.updated_at = utc_now()
            session.commit()
            return prd

    def delete_prd(self, prd_id: str) -> bool:
        with self._sessions() as session:
            prd = session.get(PRD, prd_id)
            if prd is None:
                return False
            session.delete(prd)
            session.commit()
        logger.info("Deleted PRD %s", prd_id)
        return True

    # Interactive sessions

    def get_session(self, prd_id: str) -> Optional[InteractiveSession]:
        with self._sessions() as session:
            stmt = select(InteractiveSession).where(InteractiveSession.prd_id == prd_id)
            return session.scalars(stmt).first()

    def save_session(
        self,
        prd_id: str,
        conversation_history: List[Dict[str, Any]],
        settings: Dict[str, Any],
    ) -> Tuple[Optional[InteractiveSession], bool]:
        """
        Create or replace the session of a PRD.

        Returns:
            (session, created). Session is None when the PRD does not exist.
        """
        with self._sessions() as session:
            if session.get(PRD, prd_id) is None:
                return None, False
            stmt = select(InteractiveSession).where(InteractiveSession.prd_id == prd_id)
            record = session.scalars(stmt).first()
            created = record is None
            if record is None:
                record = InteractiveSession(prd_id=prd_id)
                session.add(record)
            record.conversation_history = list(conversation_history)
            record.settings = dict(settings)
            record.updated_at = utc_now()
            session.commit()
            return record, created

    # Templates

    def list_templates(self) -> List[Template]:
        with self._sessions() as session:
            stmt = select(Template).order_by(Template.category, Template.title)
            return list(session.scalars(stmt))

    def get_template(self, template_id: str) -> Optional[Template]:
        with self._sessions() as session:
            return session.get(Template, template_id)
