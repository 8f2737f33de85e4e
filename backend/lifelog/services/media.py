"""Database operations around MediaAsset / MediaAttachment records."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lifelog.db.base import utcnow
from lifelog.exceptions import Conflict, Forbidden, NotFound, PersistenceError
from lifelog.models import AttachmentRole, JournalEntry, MediaAsset, MediaAttachment
from lifelog.utils.storage import resolve_upload_path

logger = logging.getLogger(__name__)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_attachment(attachment: MediaAttachment) -> dict[str, Any]:
    asset = attachment.asset
    return {
        "id": attachment.id,
        "assetId": asset.id,
        "filePath": asset.file_path,
        "duration": asset.duration,
        "transcript": attachment.transcript,
        "transcriptModel": attachment.transcript_model,
        "fieldId": attachment.field_id,
        "capturedAt": _isoformat(asset.captured_at),
        "createdAt": _isoformat(attachment.created_at),
    }


def commit_or_raise(db: Session, action: str) -> None:
    """Commit the session; on failure roll back and raise :class:`PersistenceError`."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Database error while %s: %s", action, exc, exc_info=True)
        raise PersistenceError("Failed to save to database", details=str(exc)) from exc


def create_media_asset(
    db: Session,
    file_path: str,
    mime_type: str,
    duration: Optional[float],
    captured_at: datetime,
) -> MediaAsset:
    """Add a new asset to the session. Durations of 0 (unprobeable files) are stored as NULL."""
    asset = MediaAsset(
        file_path=file_path,
        mime_type=mime_type,
        duration=duration if duration and duration > 0 else None,
        captured_at=captured_at,
    )
    db.add(asset)
    return asset


def attach_media(
    db: Session,
    asset: MediaAsset,
    entry: JournalEntry,
    transcript: Optional[str],
    transcript_model: Optional[str],
    field_id: Optional[str] = None,
    role: AttachmentRole = AttachmentRole.ATTACHMENT,
) -> MediaAttachment:
    attachment = MediaAttachment(
        asset=asset,
        entry=entry,
        role=role,
        transcript=transcript,
        transcript_model=transcript_model,
        field_id=field_id or None,
    )
    db.add(attachment)
    return attachment


def append_transcript(entry: JournalEntry, text: str) -> bool:
    """Append ``text`` to the entry content, separated by a blank line. Returns False for empty text."""
    if not text:
        return False
    separator = "\n\n" if entry.content else ""
    entry.content = f"{entry.content or ''}{separator}{text}"
    entry.content_updated_at = utcnow()
    return True


def get_entry_or_404(db: Session, entry_id: str) -> JournalEntry:
    entry = db.get(JournalEntry, entry_id)
    if entry is None:
        raise NotFound("Entry not found")
    return entry


def get_asset_or_404(db: Session, asset_id: str) -> MediaAsset:
    asset = db.get(MediaAsset, asset_id)
    if asset is None:
        raise NotFound("Audio file not found")
    return asset


def get_entry_attachment(db: Session, entry_id: str, attachment_id: str) -> MediaAttachment:
    """Fetch an attachment and make sure it belongs to ``entry_id``."""
    attachment = db.get(MediaAttachment, attachment_id)
    if attachment is None:
        raise NotFound("Attachment not found")
    if attachment.entity_id != entry_id:
        raise Forbidden("Forbidden")
    return attachment


def list_audio_attachments(db: Session, entry_id: str) -> list[MediaAttachment]:
    attachments = (
        db.query(MediaAttachment)
        .join(MediaAsset)
        .filter(MediaAttachment.entity_id == entry_id)
        .order_by(MediaAttachment.created_at.asc())
        .all()
    )
    return [a for a in attachments if (a.asset.mime_type or "").startswith("audio/")]


def update_attachment_transcript(
    db: Session,
    attachment: MediaAttachment,
    transcript: Optional[str],
    transcript_model: Optional[str],
) -> MediaAttachment:
    attachment.transcript = transcript
    attachment.transcript_model = transcript_model
    commit_or_raise(db, f"updating attachment {attachment.id}")
    db.refresh(attachment)
    return attachment


def remove_stored_file(uploads_dir: Path, relative_path: str) -> bool:
    """Delete a file under the uploads dir. Returns False when it was already gone."""
    full_path = resolve_upload_path(uploads_dir, relative_path)
    if not full_path.exists():
        logger.info("Stored file %s not found, skipping deletion", full_path)
        return False
    try:
        full_path.unlink()
    except OSError as exc:
        logger.error("Failed to delete stored file %s: %s", full_path, exc)
        return False
    logger.info("Deleted stored file %s", full_path)
    return True


def _reference_count(db: Session, asset_id: str) -> int:
    return db.query(MediaAttachment).filter(MediaAttachment.asset_id == asset_id).count()


def delete_attachment(db: Session, attachment: MediaAttachment, uploads_dir: Path) -> bool:
    """
    Remove an attachment; when it was the asset's last one, remove the asset
    and its file as well.

    Returns:
        True when the underlying asset was deleted too.
    """
    asset = attachment.asset
    db.delete(attachment)
    db.flush()
    # The in-memory attachments collection still holds the deleted row
    db.expire(asset)

    orphaned = _reference_count(db, asset.id) == 0
    file_path = asset.file_path
    if orphaned:
        db.delete(asset)
    commit_or_raise(db, f"deleting attachment {attachment.id}")

    if orphaned:
        remove_stored_file(uploads_dir, file_path)
    return orphaned


def delete_unreferenced_asset(db: Session, asset_id: str, uploads_dir: Path) -> MediaAsset:
    """Delete a stored recording nobody attached.

    Raises:
        NotFound: unknown asset.
        Conflict: the asset is still attached to an entry.
    """
    asset = get_asset_or_404(db, asset_id)
    references = _reference_count(db, asset.id)
    if references > 0:
        logger.info("Audio asset %s is still referenced by %d attachment(s), not deleting", asset_id, references)
        raise Conflict("Audio file is still in use", details={"referencedBy": references})

    file_path = asset.file_path
    db.delete(asset)
    commit_or_raise(db, f"deleting audio asset {asset_id}")
    remove_stored_file(uploads_dir, file_path)
    return asset
