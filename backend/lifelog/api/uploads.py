"""Helpers shared by the routes that accept audio uploads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from lifelog.exceptions import RequestRejected
from lifelog.utils.storage import (
    ensure_dir_exists,
    extension_for_upload,
    normalize_mime_type,
    relative_audio_path,
    resolve_upload_path,
)

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 1024 * 1024


@dataclass
class StoredUpload:
    """An uploaded recording written into the date-partitioned audio tree."""

    full_path: Path
    relative_path: str
    mime_type: str
    size: int

    @property
    def filename(self) -> str:
        return self.full_path.name

    def discard(self) -> None:
        """Remove the stored file, e.g. after a failed transcription."""
        try:
            self.full_path.unlink(missing_ok=True)
            logger.info("Removed stored upload %s", self.full_path)
        except OSError as exc:
            logger.error("Failed to clean up stored upload %s: %s", self.full_path, exc)


def parse_capture_time(date_str: str, time_str: Optional[str] = None) -> datetime:
    """Combine the ``date`` (ISO) and optional ``time`` (HH:MM) form fields."""
    raw = date_str.strip()
    # Browsers send toISOString() output; fromisoformat only accepts "Z" from 3.11 on
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        captured_at = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise RequestRejected(f"Invalid date: {date_str}") from exc

    if time_str and time_str.strip():
        try:
            clock = datetime.strptime(time_str.strip(), "%H:%M").time()
        except ValueError as exc:
            raise RequestRejected(f"Invalid time: {time_str}") from exc
        captured_at = datetime.combine(captured_at.date(), clock, tzinfo=captured_at.tzinfo)
    return captured_at


def too_large_message(max_upload_mb: int) -> str:
    return f"File too large. Maximum size is {max_upload_mb}MB"


def check_declared_size(file: UploadFile, max_bytes: int) -> None:
    """Reject early when the multipart part already reports its size."""
    if max_bytes and file.size is not None and file.size > max_bytes:
        logger.warning("Rejected upload '%s': %d bytes exceeds limit of %d", file.filename, file.size, max_bytes)
        raise RequestRejected(too_large_message(max_bytes // (1024 * 1024)))


async def save_uploaded_audio(
    file: UploadFile,
    uploads_dir: Path,
    captured_at: datetime,
    max_bytes: int,
) -> StoredUpload:
    """
    Streams an uploaded recording to
    ``audio/<decade>s/<year>/<month>/<day>/<timestamp>_<uuid>.<ext>``.

    The size limit is enforced while writing; an oversize file is removed
    before :class:`RequestRejected` is raised so nothing stays on disk.
    """
    check_declared_size(file, max_bytes)

    extension = extension_for_upload(file.filename, file.content_type)
    relative_path = relative_audio_path(captured_at, extension)
    full_path = resolve_upload_path(uploads_dir, relative_path)
    ensure_dir_exists(full_path.parent)

    logger.info("Saving upload '%s' (%s) to %s", file.filename, file.content_type, full_path)
    bytes_written = 0
    too_large = False
    try:
        with open(full_path, "wb") as f:
            while True:
                chunk = await file.read(READ_CHUNK_BYTES)
                if not chunk:
                    break
                bytes_written += len(chunk)
                if max_bytes and bytes_written > max_bytes:
                    too_large = True
                    break
                f.write(chunk)
    except OSError:
        full_path.unlink(missing_ok=True)
        logger.error("Error while saving upload '%s' to %s", file.filename, full_path, exc_info=True)
        raise

    if too_large:
        full_path.unlink(missing_ok=True)
        logger.warning("Upload '%s' exceeded the size limit while streaming, removed partial file", file.filename)
        raise RequestRejected(too_large_message(max_bytes // (1024 * 1024)))

    return StoredUpload(
        full_path=full_path,
        relative_path=relative_path,
        mime_type=normalize_mime_type(file.content_type, extension),
        size=bytes_written,
    )
