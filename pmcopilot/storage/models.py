"""
ORM models.

Timestamps are naive UTC. JSON columns hold the conversation history and
free-form session settings exactly as the frontend sent them.
"""

from __future__ import annotations

import datetime
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Boolean,
        datetime.datetime: DateTime,
    }


class PRD(Base):
    __tablename__ = "prds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str]
    content: Mapped[str] = mapped_column(default="")
    template_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    session: Mapped[Optional["InteractiveSession"]] = relationship(
        back_populates="prd", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<PRD {self.id} {self.title!r}>"


class InteractiveSession(Base):
    """Conversation state of the interactive generator, one per PRD."""

    __tablename__ = "interactive_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    prd_id: Mapped[str] = mapped_column(
        ForeignKey("prds.id", ondelete="CASCADE"), unique=True, index=True
    )
    conversation_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime.datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    prd: Mapped[PRD] = relationship(back_populates="session")


class Template(Base):
    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str]
    description: Mapped[str] = mapped_column(default="")
    category: Mapped[str] = mapped_column(default="general")
    is_custom: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    sections: Mapped[List["TemplateSection"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateSection.order_index",
        lazy="selectin",
    )


class TemplateSection(Base):
    __tablename__ = "template_sections"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    template_id: Mapped[str] = mapped_column(
        ForeignKey("templates.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str]
    description: Mapped[str] = mapped_column(default="")
    placeholder: Mapped[Optional[str]] = mapped_column(nullable=True)
    required: Mapped[bool] = mapped_column(default=False)
    order_index: Mapped[int] = mapped_column(default=0)

    template: Mapped[Template] = relationship(back_populates="sections")
