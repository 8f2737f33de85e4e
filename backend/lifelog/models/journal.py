"""Minimal journal entry model; only what audio attachments need."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from lifelog.db.base import Base, utcnow


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content = Column(Text, nullable=False, default="")
    content_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    attachments = relationship("MediaAttachment", back_populates="entry", order_by="MediaAttachment.created_at")
