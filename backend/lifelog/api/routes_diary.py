"""Diary voice-note endpoints.

1. `POST   /diary/upload-audio`  – store, transcribe and register a recording.
2. `POST   /diary/retranscribe`  – run a stored recording through another model.
3. `DELETE /diary/cleanup-audio` – remove a recording no entry refers to.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from lifelog.api.dependencies import get_pipeline_config, get_transcription_pipeline
from lifelog.api.uploads import parse_capture_time, save_uploaded_audio
from lifelog.db.database import get_db
from lifelog.exceptions import NotFound, RequestRejected
from lifelog.services.media import commit_or_raise, create_media_asset, delete_unreferenced_asset, get_asset_or_404
from lifelog.services.pipeline import PipelineConfig, TranscriptionPipeline
from lifelog.utils.storage import resolve_upload_path

router = APIRouter()
logger = logging.getLogger(__name__)


class CleanupAudioRequest(BaseModel):
    audioFileId: Optional[str] = None


@router.post("/upload-audio")
async def upload_audio(
    file: Optional[UploadFile] = File(None),
    date: Optional[str] = Form(None),
    time: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    keep_audio: Optional[str] = Form(None, alias="keepAudio"),
    db: Session = Depends(get_db),
    pipeline: TranscriptionPipeline = Depends(get_transcription_pipeline),
) -> dict:
    """Store a voice note under the audio tree, transcribe it and create its MediaAsset."""
    if file is None:
        raise RequestRejected("Missing file")
    if not date:
        raise RequestRejected("Missing date")

    config = pipeline.config
    captured_at = parse_capture_time(date, time)
    model = model or config.default_model
    keep = keep_audio == "true"
    logger.info("upload-audio: file='%s' date=%s model=%s keepAudio=%s", file.filename, captured_at, model, keep)

    stored = await save_uploaded_audio(file, config.uploads_dir, captured_at, config.max_upload_bytes)

    try:
        outcome = await pipeline.transcribe_file(stored.full_path, stored.mime_type, model=model)
    except Exception:
        logger.error("Transcription of %s failed, discarding the upload", stored.relative_path)
        stored.discard()
        raise

    # A failure from here on leaves the stored file without a record
    asset = create_media_asset(db, stored.relative_path, stored.mime_type, outcome.duration, captured_at)
    commit_or_raise(db, f"registering {stored.relative_path}")
    logger.info("Registered audio asset %s (%d chunk(s))", asset.id, outcome.chunk_count)

    return {
        "text": outcome.text,
        "audioFileId": asset.id,
        "audioFilePath": stored.relative_path,
        "keepAudio": keep,
        "fileSize": stored.size,
        "filename": stored.filename,
    }


@router.post("/retranscribe")
async def retranscribe(
    audio_file_id: Optional[str] = Form(None, alias="audioFileId"),
    model: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    pipeline: TranscriptionPipeline = Depends(get_transcription_pipeline),
) -> dict:
    if not audio_file_id:
        raise RequestRejected("Missing audioFileId")

    asset = get_asset_or_404(db, audio_file_id)
    try:
        full_path = resolve_upload_path(pipeline.config.uploads_dir, asset.file_path)
    except ValueError as exc:
        raise NotFound("Audio file has no valid path", details=asset.file_path) from exc
    if not full_path.is_file():
        logger.error("Audio file of asset %s not found on disk: %s", asset.id, full_path)
        raise NotFound("Audio file not found on disk")

    model = model or pipeline.config.default_model
    extension = full_path.suffix.lstrip(".") or "m4a"
    mime_type = asset.mime_type or f"audio/{extension}"

    outcome = await pipeline.transcribe_file(full_path, mime_type, model=model)
    return {"text": outcome.text, "audioFileId": asset.id, "model": model}


@router.delete("/cleanup-audio")
async def cleanup_audio(
    payload: CleanupAudioRequest,
    db: Session = Depends(get_db),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> dict:
    if not payload.audioFileId:
        raise RequestRejected("Missing audioFileId")

    delete_unreferenced_asset(db, payload.audioFileId, config.uploads_dir)
    return {
        "success": True,
        "message": "Audio file cleaned up successfully",
        "audioFileId": payload.audioFileId,
    }
