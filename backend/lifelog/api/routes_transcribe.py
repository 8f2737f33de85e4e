"""Transcription-only endpoint; nothing is written to disk or the database."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from lifelog.api.dependencies import get_transcription_pipeline
from lifelog.api.uploads import check_declared_size, too_large_message
from lifelog.exceptions import RequestRejected
from lifelog.services.pipeline import TranscriptionPipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("")
async def transcribe(
    file: Optional[UploadFile] = File(None),
    model: Optional[str] = Form(None),
    pipeline: TranscriptionPipeline = Depends(get_transcription_pipeline),
) -> dict:
    """Send a short recording to the provider in one request and return the text."""
    if file is None:
        raise RequestRejected("Missing file")

    config = pipeline.config
    check_declared_size(file, config.max_upload_bytes)
    audio = await file.read()
    if config.max_upload_bytes and len(audio) > config.max_upload_bytes:
        raise RequestRejected(too_large_message(config.max_upload_mb))

    model = model or config.default_model
    logger.info("transcribe: file='%s' (%d bytes) model=%s", file.filename, len(audio), model)
    text = await pipeline.client.transcribe(
        audio,
        filename=file.filename or "recording.webm",
        mime_type=file.content_type or "audio/webm",
        model=model,
        prompt=config.default_prompt,
    )
    return {"text": text}
