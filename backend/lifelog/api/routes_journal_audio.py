"""Audio attachments of journal entries.

`/journal-entries/{entry_id}/audio` supports POST (attach a new recording),
GET (list), PATCH (edit a stored transcript) and DELETE (detach).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from lifelog.api.dependencies import get_pipeline_config, get_transcription_pipeline
from lifelog.api.uploads import save_uploaded_audio
from lifelog.db.database import get_db
from lifelog.exceptions import RequestRejected
from lifelog.services.media import (
    append_transcript,
    attach_media,
    commit_or_raise,
    create_media_asset,
    delete_attachment,
    get_entry_attachment,
    get_entry_or_404,
    list_audio_attachments,
    serialize_attachment,
    update_attachment_transcript,
)
from lifelog.services.pipeline import PipelineConfig, TranscriptionPipeline

router = APIRouter()
logger = logging.getLogger(__name__)


class AttachmentUpdate(BaseModel):
    attachmentId: Optional[str] = None
    transcript: Optional[str] = None
    transcriptModel: Optional[str] = None


@router.post("/{entry_id}/audio")
async def add_entry_audio(
    entry_id: str,
    file: Optional[UploadFile] = File(None),
    model: Optional[str] = Form(None),
    append_text: Optional[str] = Form(None, alias="appendText"),
    field_id: Optional[str] = Form(None, alias="fieldId"),
    db: Session = Depends(get_db),
    pipeline: TranscriptionPipeline = Depends(get_transcription_pipeline),
) -> dict:
    """Attach a new recording to an entry and optionally append its transcript to the content."""
    entry = get_entry_or_404(db, entry_id)
    if file is None:
        raise RequestRejected("Missing file")

    config = pipeline.config
    model = model or config.default_model
    should_append = append_text != "false"
    captured_at = datetime.now()

    stored = await save_uploaded_audio(file, config.uploads_dir, captured_at, config.max_upload_bytes)
    try:
        outcome = await pipeline.transcribe_file(stored.full_path, stored.mime_type, model=model)
    except Exception:
        logger.error("Transcription for entry %s failed, discarding %s", entry_id, stored.relative_path)
        stored.discard()
        raise

    asset = create_media_asset(db, stored.relative_path, stored.mime_type, outcome.duration, captured_at)
    attachment = attach_media(db, asset, entry, outcome.text, model, field_id=field_id)
    if should_append:
        append_transcript(entry, outcome.text)
    commit_or_raise(db, f"attaching audio to entry {entry_id}")
    logger.info("Attached asset %s to entry %s as %s", asset.id, entry_id, attachment.id)

    return {
        "attachmentId": attachment.id,
        "assetId": asset.id,
        "transcript": outcome.text,
        "model": model,
        "duration": outcome.duration,
        "filePath": stored.relative_path,
        "fileSize": stored.size,
        "appended": should_append,
    }


@router.get("/{entry_id}/audio")
async def list_entry_audio(entry_id: str, db: Session = Depends(get_db)) -> dict:
    get_entry_or_404(db, entry_id)
    attachments = list_audio_attachments(db, entry_id)
    return {"audioAttachments": [serialize_attachment(a) for a in attachments]}


@router.patch("/{entry_id}/audio")
async def update_entry_audio(entry_id: str, payload: AttachmentUpdate, db: Session = Depends(get_db)) -> dict:
    if not payload.attachmentId:
        raise RequestRejected("Missing attachmentId")

    attachment = get_entry_attachment(db, entry_id, payload.attachmentId)
    updated = update_attachment_transcript(db, attachment, payload.transcript, payload.transcriptModel)
    return {"ok": True, "attachment": serialize_attachment(updated)}


@router.delete("/{entry_id}/audio")
async def delete_entry_audio(
    entry_id: str,
    attachment_id: Optional[str] = Query(None, alias="attachmentId"),
    db: Session = Depends(get_db),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> dict:
    if not attachment_id:
        raise RequestRejected("Missing attachmentId")

    attachment = get_entry_attachment(db, entry_id, attachment_id)
    asset_deleted = delete_attachment(db, attachment, config.uploads_dir)
    logger.info("Removed attachment %s from entry %s (asset deleted: %s)", attachment_id, entry_id, asset_deleted)
    return {"ok": True}
