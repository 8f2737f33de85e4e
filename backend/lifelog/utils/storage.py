"""Filesystem helpers for the uploads tree.

Layout under ``UPLOADS_DIR``::

    audio/<decade>s/<year>/<month>/<day>/<YYYY-MM-DD_HH-MM>_<uuid>.<ext>
    temp/<uuid>/                       per-request chunk directories

The audio layout is relied upon by cleanup scripts and direct file access.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path, PurePosixPath

AUDIO_SUBDIR = "audio"
TEMP_SUBDIR = "temp"

DEFAULT_AUDIO_EXTENSION = "m4a"

# Media types used when serving stored files back to the client
MEDIA_TYPE_MAP = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
}


def ensure_dir_exists(path: Path) -> Path:
    """Ensure that the given directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def audio_folder_for(captured_at: datetime) -> PurePosixPath:
    """Relative folder ``audio/<decade>s/<year>/<month>/<day>`` for a recording date."""
    decade = f"{captured_at.year // 10 * 10}s"
    return PurePosixPath(
        AUDIO_SUBDIR,
        decade,
        str(captured_at.year),
        f"{captured_at.month:02d}",
        f"{captured_at.day:02d}",
    )


def generate_audio_filename(captured_at: datetime, extension: str = DEFAULT_AUDIO_EXTENSION) -> str:
    """``YYYY-MM-DD_HH-MM_<uuid4>.<ext>``"""
    stamp = captured_at.strftime("%Y-%m-%d_%H-%M")
    return f"{stamp}_{uuid.uuid4()}.{extension.lstrip('.')}"


def relative_audio_path(captured_at: datetime, extension: str = DEFAULT_AUDIO_EXTENSION) -> str:
    """Unique relative path (forward slashes) for a new recording."""
    return str(audio_folder_for(captured_at) / generate_audio_filename(captured_at, extension))


def new_temp_chunk_dir(uploads_dir: Path) -> Path:
    """Path of a fresh per-request chunk directory. Not created here."""
    return uploads_dir / TEMP_SUBDIR / str(uuid.uuid4())


def resolve_upload_path(uploads_dir: Path, relative_path: str) -> Path:
    """Join ``relative_path`` onto the uploads dir, refusing anything that escapes it.

    Raises:
        ValueError: for absolute paths or ``..`` traversal.
    """
    candidate = PurePosixPath(relative_path.replace("\\", "/"))
    if candidate.is_absolute() or ".." in candidate.parts:
        raise ValueError(f"Invalid upload path: {relative_path}")
    base = uploads_dir.resolve()
    full = (base / candidate).resolve()
    if base != full and base not in full.parents:
        raise ValueError(f"Invalid upload path: {relative_path}")
    return full


def extension_for_upload(filename: str | None, content_type: str | None) -> str:
    """Pick the stored file extension from the client filename and MIME type."""
    name = (filename or "").lower()
    mime = (content_type or "").lower()
    extension = DEFAULT_AUDIO_EXTENSION
    if "mpeg" in mime or name.endswith(".mp3"):
        extension = "mp3"
    if name.endswith(".m4a"):
        extension = "m4a"
    if "webm" in mime or name.endswith(".webm"):
        extension = "webm"
    return extension


def normalize_mime_type(content_type: str | None, extension: str) -> str:
    """MIME type to store and send to providers; m4a variants become ``audio/mp4``."""
    mime = content_type or {
        "webm": "audio/webm",
        "m4a": "audio/mp4",
    }.get(extension, "audio/mpeg")
    if mime in ("audio/x-m4a", "audio/m4a"):
        mime = "audio/mp4"
    return mime


def media_type_for(path: Path) -> str:
    return MEDIA_TYPE_MAP.get(path.suffix.lower(), "application/octet-stream")
