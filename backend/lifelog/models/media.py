"""ORM models for stored media files and their journal-entry attachments."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, Float, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from lifelog.db.base import Base, utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class AttachmentRole(str, Enum):
    """How a media asset is used by the entry it is attached to."""

    SOURCE = "SOURCE"
    ATTACHMENT = "ATTACHMENT"
    GALLERY = "GALLERY"


class MediaAsset(Base):
    """
    Represents a durable audio (or other media) file on disk.

    ``file_path`` is relative to ``UPLOADS_DIR`` and follows the
    ``audio/<decade>s/<year>/<month>/<day>/<timestamp>_<uuid>.<ext>`` layout.
    """
    __tablename__ = "media_assets"

    id = Column(String(36), primary_key=True, default=_new_id, comment="UUID of the asset.")
    file_path = Column(String(1024), nullable=False, unique=True, comment="Path relative to UPLOADS_DIR.")
    mime_type = Column(String(255), nullable=True, comment="MIME type of the stored file (e.g. 'audio/mp4').")
    duration = Column(Float, nullable=True, comment="Duration in seconds, NULL when it could not be probed.")
    captured_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, comment="When the recording was made.")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    attachments = relationship("MediaAttachment", back_populates="asset")


class MediaAttachment(Base):
    """Links a MediaAsset to a journal entry and carries its editable transcript."""

    __tablename__ = "media_attachments"

    id = Column(String(36), primary_key=True, default=_new_id)
    asset_id = Column(String(36), ForeignKey("media_assets.id"), nullable=False, index=True)
    entity_id = Column(String(36), ForeignKey("journal_entries.id"), nullable=False, index=True)
    role = Column(SAEnum(AttachmentRole), nullable=False, default=AttachmentRole.ATTACHMENT)
    transcript = Column(Text, nullable=True)
    transcript_model = Column(String(255), nullable=True, comment="Model id that produced the transcript.")
    field_id = Column(String(255), nullable=True, comment="Optional editor field the recording belongs to.")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    asset = relationship("MediaAsset", back_populates="attachments")
    entry = relationship("JournalEntry", back_populates="attachments")
